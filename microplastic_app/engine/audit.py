from datetime import datetime
import platform


def start_audit(run_label: str = "microplastic analysis") -> list[str]:
    return [
        f"Session start: {datetime.now().isoformat()}",
        f"Run: {run_label}",
        f"Platform: {platform.platform()}",
    ]


def log_step(audit: list[str], msg: str) -> None:
    audit.append(f"[{datetime.now().strftime('%H:%M:%S')}] {msg}")
