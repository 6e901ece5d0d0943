"""Override configuration: manual exclusions and approval rules loaded from JSON/YAML."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Literal, Optional, Union

import structlog
import yaml

from flagsync.errors import InvalidArgumentError, NotFoundError
from flagsync.util.time import now_utc, parse_rfc3339

logger = structlog.get_logger(__name__)

ApprovalType = Literal["manual", "automated"]

DEFAULT_OVERRIDE_PATHS: tuple[str, ...] = (
    ".github/optimizely/overrides.json",
    ".github/optimizely/overrides.yml",
    ".github/optimizely/overrides.yaml",
    ".github/feature-flags/overrides.json",
    ".github/feature-flags/overrides.yml",
    ".github/feature-flags/overrides.yaml",
    "overrides.json",
    "overrides.yml",
    "overrides.yaml",
)

_YAML_SUFFIXES = (".yml", ".yaml")


def wildcard_match(key_pattern: str, flag_key: str) -> bool:
    """Match flag_key against a key where `*` stands for any run of characters."""
    if "*" not in key_pattern:
        return key_pattern == flag_key
    regex = ".*".join(re.escape(part) for part in key_pattern.split("*"))
    return re.fullmatch(regex, flag_key) is not None


@dataclass(slots=True)
class ExclusionRule:
    """A permanent or temporary exclusion of one flag key (or wildcard key)."""

    flag_key: str
    reason: str
    added_by: str
    added_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_pattern: bool = False
    tags: list[str] = field(default_factory=list)

    def matches(self, flag_key: str) -> bool:
        if self.is_pattern:
            return wildcard_match(self.flag_key, flag_key)
        return self.flag_key == flag_key

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass(slots=True)
class PatternExclusionRule:
    """Excludes every flag key the regular expression finds a match in."""

    pattern: str
    reason: str
    added_by: str
    added_at: Optional[datetime] = None

    def matches(self, flag_key: str) -> bool:
        try:
            return re.search(self.pattern, flag_key) is not None
        except re.error:
            return False


@dataclass(slots=True)
class ApprovalRule:
    """Flags matching flag_key need sign-off from approvers before archiving."""

    flag_key: str
    approval_type: ApprovalType = "manual"
    approvers: list[str] = field(default_factory=list)
    requires_all_approvers: bool = False
    reason: str = ""

    def matches(self, flag_key: str) -> bool:
        return wildcard_match(self.flag_key, flag_key)


@dataclass(slots=True)
class OverrideValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class OverrideConfig:
    """Parsed override file. An empty config excludes nothing and requires no approval."""

    version: str = "1.0"
    organization_id: Optional[str] = None
    permanent_exclusions: list[ExclusionRule] = field(default_factory=list)
    temporary_exclusions: list[ExclusionRule] = field(default_factory=list)
    pattern_exclusions: list[PatternExclusionRule] = field(default_factory=list)
    approval_rules: list[ApprovalRule] = field(default_factory=list)
    source: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: Any, *, source: Optional[Path] = None) -> "OverrideConfig":
        """
        Build a config from the parsed file structure.

        Raises:
            InvalidArgumentError: if the structure is not a mapping or a
                timestamp cannot be parsed.
        """
        if not isinstance(data, dict):
            raise InvalidArgumentError(
                "Override config must be a mapping",
                details={"source": str(source) if source else None},
            )

        override = data.get("overrideConfig") or {}
        exclusions = override.get("exclusionLists") or {}
        workflows = override.get("approvalWorkflows") or {}

        try:
            return cls(
                version=str(data.get("version", "1.0")),
                organization_id=data.get("organizationId"),
                permanent_exclusions=[
                    _exclusion_from_dict(e) for e in exclusions.get("permanentExclusions") or []
                ],
                temporary_exclusions=[
                    _exclusion_from_dict(e) for e in exclusions.get("temporaryExclusions") or []
                ],
                pattern_exclusions=[
                    _pattern_from_dict(e) for e in exclusions.get("patternExclusions") or []
                ],
                approval_rules=[
                    _approval_from_dict(r) for r in workflows.get("approvalRequired") or []
                ],
                source=source,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise InvalidArgumentError(
                f"Malformed override config: {exc}",
                details={"source": str(source) if source else None},
                cause=exc,
            ) from exc

    def validate(self) -> OverrideValidation:
        """Check required fields, temporary exclusion expiry and regex syntax."""
        errors: list[str] = []
        warnings: list[str] = []

        for rule in self.permanent_exclusions:
            if not rule.flag_key or not rule.reason or not rule.added_by:
                errors.append(
                    "Permanent exclusion missing required fields: flagKey, reason, addedBy"
                )

        for rule in self.temporary_exclusions:
            if not rule.flag_key or not rule.reason or not rule.added_by:
                errors.append(
                    "Temporary exclusion missing required fields: flagKey, reason, addedBy"
                )
            if rule.expires_at is None:
                warnings.append(f"Temporary exclusion for {rule.flag_key} has no expiration date")
            elif rule.added_at is not None and rule.expires_at <= rule.added_at:
                errors.append(
                    f"Temporary exclusion for {rule.flag_key} expires before it was added"
                )

        for pattern_rule in self.pattern_exclusions:
            if not pattern_rule.pattern or not pattern_rule.reason or not pattern_rule.added_by:
                errors.append("Pattern exclusion missing required fields: pattern, reason, addedBy")
                continue
            try:
                re.compile(pattern_rule.pattern)
            except re.error:
                errors.append(f"Invalid regex pattern: {pattern_rule.pattern}")

        for approval in self.approval_rules:
            if not approval.flag_key:
                errors.append("Approval rule missing required field: flagKey")
            if approval.approval_type == "manual" and not approval.approvers:
                errors.append(f"Manual approval rule for {approval.flag_key} has no approvers")

        return OverrideValidation(is_valid=not errors, errors=errors, warnings=warnings)


def load_override_config(
    path: Optional[Union[str, Path]] = None,
    *,
    root: Union[str, Path] = ".",
) -> OverrideConfig:
    """
    Load overrides from path, or from the first default path found under root.

    Without an explicit path and with no file present, an empty config is
    returned.

    Raises:
        NotFoundError: if an explicit path does not exist.
        InvalidArgumentError: if the file cannot be parsed or fails validation.
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.is_file():
            raise NotFoundError(
                f"Override config not found: {config_path}",
                details={"path": str(config_path)},
            )
    else:
        base = Path(root)
        config_path = next(
            (base / rel for rel in DEFAULT_OVERRIDE_PATHS if (base / rel).is_file()),
            None,
        )
        if config_path is None:
            logger.info("override_config_not_found", root=str(base))
            return OverrideConfig()

    config = OverrideConfig.from_dict(_read_config_file(config_path), source=config_path)
    validation = config.validate()
    for warning in validation.warnings:
        logger.warning("override_config_warning", path=str(config_path), warning=warning)
    if not validation.is_valid:
        raise InvalidArgumentError(
            f"Invalid override configuration: {'; '.join(validation.errors)}",
            details={"path": str(config_path), "errors": validation.errors},
        )

    logger.info(
        "override_config_loaded",
        path=str(config_path),
        permanent_exclusions=len(config.permanent_exclusions),
        temporary_exclusions=len(config.temporary_exclusions),
        pattern_exclusions=len(config.pattern_exclusions),
        approval_rules=len(config.approval_rules),
    )
    return config


class OverridePolicy:
    """ExclusionPolicy backed by an OverrideConfig; also resolves approval rules."""

    def __init__(
        self,
        config: Optional[OverrideConfig] = None,
        *,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._config = config or OverrideConfig()
        self._clock = clock

    @classmethod
    def from_file(
        cls,
        path: Optional[Union[str, Path]] = None,
        *,
        root: Union[str, Path] = ".",
    ) -> "OverridePolicy":
        return cls(load_override_config(path, root=root))

    @property
    def config(self) -> OverrideConfig:
        return self._config

    def is_excluded(self, flag_key: str) -> bool:
        return self.exclusion_reason(flag_key) is not None

    def exclusion_reason(self, flag_key: str) -> Optional[str]:
        """Return the reason of the first matching exclusion, or None."""
        now = self._clock()
        for rule in self._config.permanent_exclusions:
            if rule.matches(flag_key):
                return rule.reason
        for rule in self._config.temporary_exclusions:
            if not rule.is_expired(now) and rule.matches(flag_key):
                return rule.reason
        for pattern_rule in self._config.pattern_exclusions:
            if pattern_rule.matches(flag_key):
                return pattern_rule.reason
        return None

    def requires_approval(self, flag_key: str) -> Optional[ApprovalRule]:
        """Return the first approval rule matching flag_key, or None."""
        for rule in self._config.approval_rules:
            if rule.matches(flag_key):
                return rule
        return None


def _read_config_file(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in _YAML_SUFFIXES:
            return yaml.safe_load(text)
        return json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise InvalidArgumentError(
            f"Failed to parse override config {path}: {exc}",
            details={"path": str(path)},
            cause=exc,
        ) from exc


def _optional_dt(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        # YAML parses unquoted timestamps itself.
        return value if value.tzinfo is not None else parse_rfc3339(value.isoformat() + "Z")
    return parse_rfc3339(str(value))


def _exclusion_from_dict(d: dict[str, Any]) -> ExclusionRule:
    return ExclusionRule(
        flag_key=str(d.get("flagKey", "")),
        reason=str(d.get("reason", "")),
        added_by=str(d.get("addedBy", "")),
        added_at=_optional_dt(d.get("addedAt")),
        expires_at=_optional_dt(d.get("expiresAt")),
        is_pattern=bool(d.get("isPattern", False)),
        tags=list(d.get("tags") or []),
    )


def _pattern_from_dict(d: dict[str, Any]) -> PatternExclusionRule:
    return PatternExclusionRule(
        pattern=str(d.get("pattern", "")),
        reason=str(d.get("reason", "")),
        added_by=str(d.get("addedBy", "")),
        added_at=_optional_dt(d.get("addedAt")),
    )


def _approval_from_dict(d: dict[str, Any]) -> ApprovalRule:
    approval_type = d.get("approvalType", "manual")
    if approval_type not in ("manual", "automated"):
        raise ValueError(f"unknown approvalType: {approval_type}")
    return ApprovalRule(
        flag_key=str(d.get("flagKey", "")),
        approval_type=approval_type,
        approvers=[str(a) for a in d.get("approvers") or []],
        requires_all_approvers=bool(d.get("requiresAllApprovers", False)),
        reason=str(d.get("reason", "")),
    )
