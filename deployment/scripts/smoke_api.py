#!/usr/bin/env python3
"""
Smoke check for a running WhatsApp API.

Hits the read-only endpoints and, when asked, sends one message.

Usage:
    python deployment/scripts/smoke_api.py
    python deployment/scripts/smoke_api.py --url https://my-api.onrender.com
    python deployment/scripts/smoke_api.py --send 5491234567890 --message "smoke test"
"""

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx
from rich.console import Console
from rich.table import Table

API_URL = os.getenv("WAGATEWAY_URL", "http://localhost:10000")

console = Console()


@dataclass
class CheckResult:
    """Outcome of one endpoint check."""
    name: str
    status_code: Optional[int]
    ok: bool
    detail: str


def run_check(
    client: httpx.Client,
    name: str,
    method: str,
    path: str,
    accept: Callable[[int, Dict[str, Any]], bool],
    summarize: Callable[[Dict[str, Any]], str],
    **kwargs,
) -> CheckResult:
    """Call one endpoint and judge the answer."""
    try:
        response = client.request(method, path, **kwargs)
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        return CheckResult(name, None, False, str(exc))

    ok = accept(response.status_code, data)
    detail = summarize(data) if ok else data.get("message") or response.text
    return CheckResult(name, response.status_code, ok, detail)


def run_smoke(
    client: httpx.Client,
    send_to: Optional[str] = None,
    message: str = "smoke test",
) -> List[CheckResult]:
    """Run every check in order. The send check only runs with a recipient."""
    results = [
        run_check(
            client,
            "health",
            "GET",
            "/health",
            lambda code, data: code == 200 and data.get("status") == "healthy",
            lambda data: f"ready={data.get('ready')} uptime={data.get('uptime')}s",
        ),
        run_check(
            client,
            "status",
            "GET",
            "/api/status",
            lambda code, data: code == 200,
            lambda data: f"status={data.get('status')} phase={data.get('phase')}",
        ),
        # A waiting answer (success=false) is still a healthy endpoint
        run_check(
            client,
            "qr",
            "GET",
            "/api/qr",
            lambda code, data: code == 200,
            lambda data: data.get("message", ""),
        ),
    ]

    if send_to:
        results.append(
            run_check(
                client,
                "send-message",
                "POST",
                "/api/send-message",
                lambda code, data: code == 200 and data.get("success") is True,
                lambda data: f"{data.get('message')} ({data.get('messageId')})",
                json={"number": send_to, "message": message},
            )
        )

    return results


def render(results: List[CheckResult]) -> Table:
    table = Table(title="WhatsApp API smoke check")
    table.add_column("Check")
    table.add_column("HTTP")
    table.add_column("Result")
    table.add_column("Detail")
    for result in results:
        table.add_row(
            result.name,
            str(result.status_code) if result.status_code is not None else "-",
            "[green]OK[/green]" if result.ok else "[red]FAIL[/red]",
            result.detail,
        )
    return table


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Smoke check a running WhatsApp API")
    parser.add_argument("--url", default=API_URL, help=f"API base URL (default: {API_URL})")
    parser.add_argument("--send", metavar="NUMBER", help="Also send a message to this number")
    parser.add_argument("--message", default="smoke test", help="Text for --send")
    parser.add_argument("--timeout", type=float, default=40.0, help="Per-request timeout in seconds")
    args = parser.parse_args(argv)

    console.print(f"Checking [bold]{args.url}[/bold]")
    with httpx.Client(base_url=args.url, timeout=args.timeout) as client:
        results = run_smoke(client, send_to=args.send, message=args.message)

    console.print(render(results))
    return 0 if all(result.ok for result in results) else 1


if __name__ == "__main__":
    sys.exit(main())
