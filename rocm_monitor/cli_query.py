import json
import os
import sys

import requests
import typer

API = os.getenv("ROCM_MON_API", "http://127.0.0.1:8080")

app = typer.Typer(add_completion=False, help="Query a running rocm-monitor server.")
state = {"api": API}


@app.callback()
def main(api: str = typer.Option(API, help="base URL of the rocm-monitor server")):
    state["api"] = api.rstrip("/")


def _show(r: requests.Response) -> None:
    if r.status_code == 204:
        print("ok")
        return
    try:
        body = r.json()
    except ValueError:
        print("Error:", r.text, file=sys.stderr); sys.exit(1)
    print(json.dumps(body, indent=2, ensure_ascii=False))
    if not r.ok:
        sys.exit(1)


@app.command()
def latest():
    """Most recent sample."""
    _show(requests.get(f"{state['api']}/api/latest", timeout=10))


@app.command()
def stats(window: str = typer.Option(None, help="only samples newer than e.g. 5m")):
    params = {"window": window} if window else None
    _show(requests.get(f"{state['api']}/api/stats", params=params, timeout=10))


@app.command()
def config():
    """Collector statistics and current interval."""
    _show(requests.get(f"{state['api']}/api/config", timeout=10))


@app.command("set-interval")
def set_interval(value: str = typer.Argument(..., help="e.g. 10s or 1m")):
    _show(requests.post(f"{state['api']}/api/config", json={"interval": value}, timeout=10))


@app.command()
def gpuinfo():
    _show(requests.get(f"{state['api']}/api/gpuinfo", timeout=30))


@app.command()
def clear():
    """Drop the collected history."""
    _show(requests.delete(f"{state['api']}/api/history", timeout=10))


if __name__ == "__main__":
    app()          # `python -m rocm_monitor.cli_query latest`
