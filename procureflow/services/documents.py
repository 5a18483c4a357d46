"""HTTP clients for the PDF generator and e-mail sender services."""

import logging
from typing import Optional
from uuid import UUID

import httpx

from procureflow.core.config import get_settings
from procureflow.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class _HttpCollaborator:
    """Shared httpx plumbing for collaborator services."""

    service_name = "service"

    def __init__(
        self,
        url: Optional[str],
        *,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.timeout = timeout if timeout is not None else get_settings().http_timeout
        self._client = client

    def _post(self, payload: dict) -> httpx.Response:
        if not self.url:
            raise ConfigurationError(f"No URL configured for the {self.service_name}")
        if self._client is not None:
            response = self._client.post(self.url, json=payload, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(self.url, json=payload)
        response.raise_for_status()
        return response


class HttpDocumentGenerator(_HttpCollaborator):
    """Generates purchase order PDFs through the document service."""

    service_name = "document service"

    def __init__(self, url: Optional[str] = None, **kwargs):
        super().__init__(url if url is not None else get_settings().document_service_url, **kwargs)

    def generate(self, document_id: UUID) -> str:
        """
        Generate the PDF for an approved purchase order.

        Returns:
            URL of the generated PDF

        Raises:
            ConfigurationError: If no document service URL is configured
            httpx.HTTPError: On transport errors or non-2xx responses
            ValueError: If the response carries no URL
        """
        response = self._post({"po_id": str(document_id)})
        url = response.json().get("pdf_url")
        if not url:
            raise ValueError(f"Document service returned no pdf_url for {document_id}")
        logger.info(f"Generated PDF for PO {document_id}: {url}")
        return url


class HttpEmailSender(_HttpCollaborator):
    """Sends templated e-mails through the e-mail service."""

    service_name = "email service"

    def __init__(self, url: Optional[str] = None, **kwargs):
        super().__init__(url if url is not None else get_settings().email_service_url, **kwargs)

    def send(self, template_key: str, document_id: UUID) -> None:
        """Ask the e-mail service to send one templated e-mail about a document."""
        self._post({"type": template_key, "document_id": str(document_id)})
        logger.debug(f"Requested {template_key} e-mail for {document_id}")
