"""Organisation workflow configuration files.

Handles loading and validation of YAML files describing an organisation's
approval thresholds and custom workflows, e.g.::

    organisation:
      name: Acme Property
      slug: acme
    thresholds:
      use_custom_workflows: true
      auto_approve_below_amount: 2000
      require_ceo_above_amount: 15000
    workflows:
      - name: Standard PO
        document_type: PO
        default: true
        steps:
          - role: PROPERTY_MANAGER
            max_amount: 5000
          - role: MD
          - role: CEO
            min_amount: 15000
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from slugify import slugify

from procureflow.core.documents import DocumentType
from procureflow.core.errors import ValidationError
from procureflow.core.rbac.roles import Role
from procureflow.core.workflow.models import validate_step_bounds


@dataclass
class StepConfig:
    """Configuration for a single workflow step."""

    step_order: int
    approver_role: Role
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    skip_if_below_amount: Optional[Decimal] = None
    is_required: bool = True


@dataclass
class WorkflowConfig:
    """Configuration for a custom workflow."""

    name: str
    document_type: DocumentType = DocumentType.PO
    is_default: bool = False
    is_active: bool = True
    steps: List[StepConfig] = field(default_factory=list)


@dataclass
class ThresholdConfig:
    """Approval policy switches."""

    use_custom_workflows: bool = False
    auto_approve_below_amount: Optional[Decimal] = None
    require_ceo_above_amount: Optional[Decimal] = None


@dataclass
class OrganisationConfig:
    """Top-level configuration for one organisation."""

    name: str
    slug: str
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    workflows: List[WorkflowConfig] = field(default_factory=list)


def _decimal(value: Any, name: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number, got {value!r}", code="invalid_config")


def parse_step_config(step_dict: Dict[str, Any], position: int) -> StepConfig:
    """Parse a step configuration dictionary.

    Args:
        step_dict: Step configuration dictionary
        position: 1-based position in the list, used when step_order is omitted

    Returns:
        StepConfig instance

    Raises:
        ValidationError: On an unknown role or malformed bounds
    """
    role_name = step_dict.get("role", step_dict.get("approver_role"))
    try:
        role = Role(role_name)
    except ValueError:
        raise ValidationError(f"Unknown approver role: {role_name!r}", code="invalid_config")

    step = StepConfig(
        step_order=int(step_dict.get("step_order", position)),
        approver_role=role,
        min_amount=_decimal(step_dict.get("min_amount"), "min_amount"),
        max_amount=_decimal(step_dict.get("max_amount"), "max_amount"),
        skip_if_below_amount=_decimal(step_dict.get("skip_if_below_amount"), "skip_if_below_amount"),
        is_required=bool(step_dict.get("required", step_dict.get("is_required", True))),
    )
    validate_step_bounds(step.step_order, step.min_amount, step.max_amount, step.skip_if_below_amount)
    return step


def parse_workflow_config(workflow_dict: Dict[str, Any]) -> WorkflowConfig:
    """Parse a workflow configuration dictionary.

    Raises:
        ValidationError: On a missing name, unknown document type or
            duplicate step positions
    """
    name = workflow_dict.get("name")
    if not name:
        raise ValidationError("Workflow name is required", code="invalid_config")
    try:
        document_type = DocumentType(workflow_dict.get("document_type", DocumentType.PO.value))
    except ValueError:
        raise ValidationError(
            f"Unknown document type: {workflow_dict.get('document_type')!r}", code="invalid_config"
        )

    steps = [
        parse_step_config(step_dict, position)
        for position, step_dict in enumerate(workflow_dict.get("steps", []), start=1)
    ]
    orders = [step.step_order for step in steps]
    if len(orders) != len(set(orders)):
        raise ValidationError(f"Workflow {name} repeats a step_order", code="invalid_config")

    return WorkflowConfig(
        name=name,
        document_type=document_type,
        is_default=bool(workflow_dict.get("default", workflow_dict.get("is_default", False))),
        is_active=bool(workflow_dict.get("active", workflow_dict.get("is_active", True))),
        steps=steps,
    )


def parse_threshold_config(threshold_dict: Dict[str, Any]) -> ThresholdConfig:
    """Parse the thresholds section.

    Raises:
        ValidationError: If auto-approval does not sit below the CEO threshold
    """
    thresholds = ThresholdConfig(
        use_custom_workflows=bool(threshold_dict.get("use_custom_workflows", False)),
        auto_approve_below_amount=_decimal(
            threshold_dict.get("auto_approve_below_amount"), "auto_approve_below_amount"
        ),
        require_ceo_above_amount=_decimal(
            threshold_dict.get("require_ceo_above_amount"), "require_ceo_above_amount"
        ),
    )
    for name in ("auto_approve_below_amount", "require_ceo_above_amount"):
        value = getattr(thresholds, name)
        if value is not None and value <= 0:
            raise ValidationError(f"{name} must be positive", code="invalid_config")
    if (
        thresholds.auto_approve_below_amount is not None
        and thresholds.require_ceo_above_amount is not None
        and thresholds.auto_approve_below_amount >= thresholds.require_ceo_above_amount
    ):
        raise ValidationError(
            "auto_approve_below_amount must be lower than require_ceo_above_amount",
            code="invalid_config",
        )
    return thresholds


def parse_config(config_dict: Dict[str, Any]) -> OrganisationConfig:
    """Parse the full configuration dictionary.

    Args:
        config_dict: Full configuration dictionary

    Returns:
        OrganisationConfig instance
    """
    organisation = config_dict.get("organisation", {})
    name = organisation.get("name")
    if not name:
        raise ValidationError("organisation.name is required", code="invalid_config")

    return OrganisationConfig(
        name=name,
        slug=organisation.get("slug") or slugify(name),
        thresholds=parse_threshold_config(config_dict.get("thresholds", {})),
        workflows=[parse_workflow_config(w) for w in config_dict.get("workflows", [])],
    )


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid YAML
        TypeError: If the document root is not a mapping
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_typed_config(config_path: str) -> OrganisationConfig:
    """Load and parse configuration into typed dataclasses."""
    return parse_config(load_config(config_path))
