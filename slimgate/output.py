#!/usr/bin/env python3
"""
SlimGate Terminal Output

Timestamped, colour-coded progress lines for each orchestration stage.
Set NO_COLOR to get plain text.
"""

import os
from datetime import datetime, timezone
from typing import Optional, Sequence

_PLAIN = bool(os.environ.get("NO_COLOR"))

# ANSI color codes
RED = "" if _PLAIN else "\033[91m"
GREEN = "" if _PLAIN else "\033[92m"
YELLOW = "" if _PLAIN else "\033[93m"
CYAN = "" if _PLAIN else "\033[96m"
WHITE = "" if _PLAIN else "\033[97m"
GRAY = "" if _PLAIN else "\033[90m"
RESET = "" if _PLAIN else "\033[0m"
BOLD = "" if _PLAIN else "\033[1m"


def timestamp() -> str:
    """Return current timestamp in clean format."""
    return datetime.now(timezone.utc).strftime("%H:%M:%S")


def log_banner(image: str, mode: str):
    """Print the run header."""
    print(f"{BOLD}{CYAN}⟡ SlimGate{RESET} {GRAY}— minifying{RESET} {WHITE}{image}{RESET} {GRAY}(mode={mode}){RESET}")


def log_stage(name: str, detail: str = ""):
    """Log entry into an orchestration stage."""
    suffix = f" {GRAY}{detail}{RESET}" if detail else ""
    print(f"{GRAY}[{timestamp()}]{RESET} {CYAN}▶ {name}{RESET}{suffix}")


def log_args(args: Sequence[str]):
    """Dump the engine argument vector (debug only)."""
    print(f"{GRAY}[{timestamp()}]{RESET} {YELLOW}engine params:{RESET}")
    for token in args:
        print(f"           │ {token}")


def log_engine_output(output: str):
    """Replay captured engine output, indented."""
    for line in output.rstrip().splitlines():
        print(f"           {GRAY}│{RESET} {line}")


def log_fallback(image: str, reason: str):
    """Log that the original image is being handed back."""
    print(f"           ╰─▶ {YELLOW}{BOLD}↺ FALLBACK{RESET}")
    print(f"               {YELLOW}├─ Returning original: {image}{RESET}")
    print(f"               {YELLOW}╰─ Reason: {reason}{RESET}")


def log_result(image: str, image_id: Optional[str] = None):
    """Log a successful minification."""
    print(f"           ╰─▶ {GREEN}{BOLD}✅ MINIFIED{RESET}")
    if image_id:
        print(f"               {GREEN}├─ Id: {image_id[:19]}{RESET}")
    print(f"               {GREEN}╰─ Image: {image}{RESET}")


def log_inspection(container: str, original: str, minified: str):
    """Log where the side-by-side filesystems landed."""
    print(f"{GRAY}[{timestamp()}]{RESET} {CYAN}INSPECT:{RESET} docker start -ai {container}")
    print(f"           ├─ /before ← {original}")
    print(f"           ╰─ /after  ← {minified}")


def log_released(session: str):
    """Log daemon teardown."""
    print(f"{GRAY}[{timestamp()}]{RESET} ⟡ Daemon {session} released")


def log_record_signed(event_id: str, chain_hash: str):
    """Log that a ledger record was signed."""
    print(f"           {GRAY}├─ Ledger record: {event_id[:8]}...{RESET}")
    print(f"           {GRAY}╰─ Chain hash: {chain_hash[:12]}...{RESET}")


def log_warn(message: str):
    """Log a warning."""
    print(f"{GRAY}[{timestamp()}]{RESET} {YELLOW}WARN:{RESET} {message}")


def log_error(message: str):
    """Log an error."""
    print(f"{GRAY}[{timestamp()}]{RESET} {RED}ERROR:{RESET} {message}")


def log_info(message: str):
    """Log an info message."""
    print(f"{GRAY}[{timestamp()}]{RESET} {message}")
