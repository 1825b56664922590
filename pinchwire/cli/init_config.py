"""Config template initialization command."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from pinchwire.config import PinchwireConfig, YAMLConfigLoader

console = Console()


def default_config_dict() -> dict[str, object]:
    return PinchwireConfig.model_validate({}).model_dump(mode="json")


def init_config_command(path: str = ".", force: bool = False) -> Path:
    """Create pinchwire.yaml populated with every default setting."""
    target_dir = Path(path).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)
    output_path = target_dir / YAMLConfigLoader.DEFAULT_FILENAME
    if output_path.exists() and not force:
        raise FileExistsError(f"Config already exists: {output_path}")
    YAMLConfigLoader.dump(default_config_dict(), output_path)
    console.print(f"[green]Created[/green] {output_path}")
    return output_path
