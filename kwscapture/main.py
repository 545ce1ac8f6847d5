"""Main application entry point for kwscapture."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .audio.device import MicrophonePlatform
from .config import KwsCaptureConfig
from .models.capture import CaptureSnapshot, CaptureState
from .models.gate import GateDecision
from .services.capture_session import CaptureSession

logger = logging.getLogger(__name__)

DECISION_STYLES = {
    GateDecision.PASS: "green",
    GateDecision.AMBIGUOUS: "yellow",
    GateDecision.REJECT: "red",
}


class Recorder:
    """Runs capture takes from the command line."""

    def __init__(self, config: KwsCaptureConfig, console: Optional[Console] = None,
                 platform: Optional[MicrophonePlatform] = None):
        self.config = config
        self.console = console or Console()
        self.platform = platform
        self.session: Optional[CaptureSession] = None

    async def run(self, takes: int) -> List[CaptureSnapshot]:
        snapshots: List[CaptureSnapshot] = []
        self.session = CaptureSession(self.config, platform=self.platform)
        async with self.session as session:
            for take in range(1, takes + 1):
                self.console.print(f"🎤 Take {take}/{takes}: speak the keyword now "
                                   f"({session.max_duration_ms} ms window)", style="blue")
                await session.start_recording()
                snapshot = await session.wait_until_settled()
                snapshots.append(snapshot)
                self.render(snapshot)
                if snapshot.state not in (CaptureState.RESULT, CaptureState.DURATION_REJECTED):
                    break
        return snapshots

    def render(self, snapshot: CaptureSnapshot) -> None:
        table = Table(show_header=False, box=None)
        table.add_column("field", style="bold")
        table.add_column("value")
        table.add_row("State", snapshot.state.value)
        table.add_row("Codec", snapshot.codec or "default")
        table.add_row("Output rate", f"{snapshot.output_sample_rate} Hz")
        if snapshot.failure is not None:
            table.add_row("Failure", snapshot.failure.value)
        if snapshot.duration_deviation_ms is not None:
            table.add_row("Duration deviation", f"{snapshot.duration_deviation_ms} ms")

        style = "white"
        result = snapshot.gate_result
        if result is not None:
            m = result.metrics
            style = DECISION_STYLES[result.decision]
            table.add_row("Decision", f"{result.decision.value} ({result.reason.value})")
            table.add_row("RMS", f"{m.rms:.4f}")
            table.add_row("Peak", f"{m.abs_max:.3f}")
            table.add_row("Clip ratio", f"{m.clip_ratio:.4f}")
            table.add_row("Speech ratio", f"{m.speech_ratio:.2f}")
            table.add_row("Speech span", f"{m.first_speech_ms} - {m.last_speech_ms} ms")

        title = result.user_message if result is not None else snapshot.state.value
        self.console.print(Panel(table, title=title, border_style=style))


def setup_logging(config: KwsCaptureConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get_log_file_path()
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("kwscapture starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def main() -> None:
    """Main entry point for kwscapture."""
    parser = argparse.ArgumentParser(
        description="kwscapture - record and gate fixed-length keyword samples",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config)"
    )

    parser.add_argument(
        "--takes",
        type=int,
        default=1,
        help="Number of samples to record (default: 1)"
    )

    parser.add_argument(
        "--policy",
        choices=["gate", "duration"],
        help="Rejection policy (overrides config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"kwscapture v{__version__}"
    )

    args = parser.parse_args()
    console = Console()

    try:
        config = KwsCaptureConfig(args.config)
        if args.policy:
            config.set('capture.rejection_policy', args.policy)
        setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

        snapshots = asyncio.run(Recorder(config, console).run(max(1, args.takes)))
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
        return
    except Exception as e:
        console.print(f"❌ Error: {e}", style="red")
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)

    if not snapshots or snapshots[-1].state in (CaptureState.ERROR, CaptureState.MIC_DENIED,
                                                CaptureState.UNSUPPORTED):
        sys.exit(2)


if __name__ == "__main__":
    main()
