"""
Structure checks for a .context workspace root.

A usable workspace holds at least one of docs/ or agents/. The other expected
folders are reported when absent but do not make the root unusable.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path

EXPECTED_DIRECTORIES = ("docs", "agents", "workflow", "plans", "rules")


@dataclass(frozen=True)
class StructureValidation:
    has_docs: bool = False
    has_agents: bool = False
    has_workflow: bool = False
    has_plans: bool = False
    has_rules: bool = False
    missing_directories: tuple[str, ...] = field(default_factory=tuple)
    wrong_type: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return self.has_docs or self.has_agents

    def to_dict(self) -> dict:
        data = asdict(self)
        data["missing_directories"] = list(self.missing_directories)
        data["wrong_type"] = list(self.wrong_type)
        data["is_valid"] = self.is_valid
        return data


def _classify(path: Path) -> str:
    """Return 'dir', 'other' or 'absent' for path (symlinks are followed)."""
    try:
        if path.is_dir():
            return "dir"
        if path.exists() or path.is_symlink():
            return "other"
    except OSError:
        return "absent"
    return "absent"


def validate_structure(root_path: str | Path) -> StructureValidation:
    """Classify each expected subdirectory of root_path. Never raises on a missing root."""
    root = Path(root_path)
    present: dict[str, bool] = {}
    missing: list[str] = []
    wrong_type: list[str] = []
    for name in EXPECTED_DIRECTORIES:
        kind = _classify(root / name)
        present[name] = kind == "dir"
        if kind == "other":
            missing.append(f"{name} exists but is not a directory")
            wrong_type.append(name)
        elif kind == "absent":
            missing.append(name)
    return StructureValidation(
        has_docs=present["docs"],
        has_agents=present["agents"],
        has_workflow=present["workflow"],
        has_plans=present["plans"],
        has_rules=present["rules"],
        missing_directories=tuple(missing),
        wrong_type=tuple(wrong_type),
    )
