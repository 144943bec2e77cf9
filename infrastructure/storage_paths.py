import os
from pathlib import Path
from typing import Optional

STORAGE_MODES = ("in-repo", "centralized")


def get_dex_home() -> Path:
    """DEX_HOME, then $XDG_CONFIG_HOME/dex, then ~/.config/dex."""
    env_home = os.environ.get("DEX_HOME")
    if env_home:
        return Path(env_home).expanduser()
    config_dir = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_dir).expanduser() if config_dir else Path.home() / ".config"
    return base / "dex"


def find_git_root(start: Path) -> Optional[Path]:
    try:
        current = Path(start).resolve()
    except OSError:
        current = Path(start)
    for candidate in (current, *current.parents):
        # .git is a file inside worktrees
        if (candidate / ".git").exists():
            return candidate
    return None


def get_project_key(project_dir: Path) -> str:
    """Derive a stable key from the origin remote, falling back to the folder name."""
    git_config = project_dir / ".git" / "config"
    if git_config.is_file():
        try:
            content = git_config.read_text(encoding="utf-8")
        except OSError:
            content = ""
        for line in content.splitlines():
            if "url = " in line:
                url = line.split("url = ", 1)[1].strip()
                tail = url.split(":")[-1] if ":" in url and "://" not in url else "/".join(url.split("/")[-2:])
                return tail.replace(".git", "").replace("/", "_")
    return project_dir.name


def get_default_storage_path(mode: str = "in-repo", cwd: Optional[Path] = None) -> Path:
    if mode not in STORAGE_MODES:
        raise ValueError(f"Unknown storage mode: {mode!r}")
    cwd = Path(cwd) if cwd is not None else Path.cwd()
    git_root = find_git_root(cwd)
    if mode == "centralized":
        return get_dex_home() / "projects" / get_project_key(git_root or cwd)
    if git_root is not None:
        return git_root / ".dex"
    return get_dex_home() / "local"


def get_storage_path(mode: str = "in-repo", cwd: Optional[Path] = None) -> Path:
    env_path = os.environ.get("DEX_STORAGE_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return get_default_storage_path(mode, cwd)
