"""Optional dependency checks for queue adapters."""

from __future__ import annotations

from importlib.util import find_spec

# adapter type -> (import name, s3intake extra), None when nothing is needed
_ADAPTER_REQUIREMENTS: dict[str, tuple[str, str] | None] = {
    "mock": None,
    "sqs": ("aioboto3", "sqs"),
}


def ensure_adapter_dependency(adapter_type: str) -> None:
    """Fail early when the library behind a queue adapter is not installed."""
    normalized = adapter_type.strip().lower()
    if normalized not in _ADAPTER_REQUIREMENTS:
        supported = ", ".join(sorted(_ADAPTER_REQUIREMENTS))
        raise ValueError(f"Unsupported queue adapter type: {adapter_type}. Supported: {supported}")

    requirement = _ADAPTER_REQUIREMENTS[normalized]
    if requirement is None:
        return
    module_name, extra = requirement
    if find_spec(module_name) is None:
        raise RuntimeError(
            f"The {normalized} queue adapter requires {module_name}. Install with: pip install 's3intake[{extra}]'"
        )
