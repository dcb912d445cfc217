"""Alert output channels."""
import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from rich.console import Console

from utils.timeutils import format_duration

logger = logging.getLogger("equipalert.alerts.channels")


@runtime_checkable
class AlertChannel(Protocol):
    def send(self, alert) -> None: ...


class ConsoleChannel:
    """Print alerts to the terminal with rich formatting."""

    SEVERITY_STYLES = {
        "CRITICAL": "bold white on red",
        "HIGH": "bold red",
        "MEDIUM": "bold yellow",
        "LOW": "bold blue",
    }

    def __init__(self, console=None):
        self.console = console or Console()

    def send(self, alert):
        style = self.SEVERITY_STYLES.get(alert.severity, "")
        merged = f" x{alert.merged_count}" if alert.merged_count else ""
        self.console.print(
            f"[{style}][{alert.severity}][/] {alert.equipamento} | {alert.rule_name}: {alert.message} "
            f"[dim]({format_duration(alert.duration)}{merged})[/]",
            highlight=False,
        )


class FileChannel:
    """Append alerts to a JSON lines file."""

    def __init__(self, log_path="data/alerts.jsonl"):
        self.log_path = Path(log_path)

    def send(self, alert):
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(alert.to_dict(), default=str, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write alert to file: {e}")


def build_channels(config):
    """Channels enabled in the ``channels`` config section."""
    cfg = config.get("channels", {})
    channels = []
    if cfg.get("console", True):
        channels.append(ConsoleChannel())
    if cfg.get("file_enabled", False):
        channels.append(FileChannel(cfg.get("file_path", "data/alerts.jsonl")))
    return channels
