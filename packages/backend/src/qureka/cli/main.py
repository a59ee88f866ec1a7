"""Qureka CLI — talk to the session API and run maintenance jobs.

Usage:
    qureka health                          # Server / database / Redis status
    qureka register alice --name Alice ... # Create an account
    qureka login alice --remember-me       # Log in, save tokens locally
    qureka verify                          # Check the saved access token
    qureka refresh                         # New access token from saved refresh token
    qureka logout                          # Revoke the session, forget tokens
    qureka purge-tokens                    # Delete expired refresh tokens (direct DB)
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url() -> str:
    return os.environ.get("QUREKA_API_URL", DEFAULT_API_URL).rstrip("/")


def _session_file() -> Path:
    return Path(
        os.environ.get("QUREKA_SESSION_FILE", Path.home() / ".qureka_session.json")
    )


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Qureka backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _load_session() -> dict:
    path = _session_file()
    if not path.exists():
        return {}
    return json.loads(path.read_text())


def _save_session(data: dict) -> None:
    path = _session_file()
    path.write_text(json.dumps(data))
    path.chmod(0o600)


def _token(explicit: Optional[str], key: str) -> str:
    """Resolve a token from the flag or the saved session."""
    token = explicit or _load_session().get(key)
    if not token:
        click.secho(f"Error: no {key} (pass --token or run `qureka login`)", fg="red", err=True)
        sys.exit(1)
    return token


def _report(r: httpx.Response) -> dict:
    """Print an error response and exit, or return the JSON body."""
    body = r.json() if r.content else {}
    if r.is_error:
        msg = body.get("detail", r.text)
        if body.get("expired"):
            msg += " (expired — try `qureka refresh`)"
        click.secho(f"Error {r.status_code}: {msg}", fg="red", err=True)
        sys.exit(1)
    return body


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="qureka")
def main():
    """Qureka — accounts and session tokens."""


@main.command()
def health():
    """Show server and dependency health."""
    _run(_health_impl())


async def _health_impl():
    async with _client() as c:
        r = await c.get("/api/v1/health")
        data = _report(r)
    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"Status: {data.get('status')}", fg=color, bold=True)
    for key in ("server", "database", "redis", "live_sessions"):
        click.echo(f"  {key:<14}{data.get(key, '-')}")


@main.command()
@click.argument("username")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--name", required=True)
@click.option("--age", required=True, type=int)
@click.option("--gender", required=True)
@click.option("--phone", required=True)
@click.option("--email", default=None)
def register(username: str, password: str, name: str, age: int, gender: str,
             phone: str, email: Optional[str]):
    """Create a new account."""
    _run(_register_impl({
        "username": username,
        "password": password,
        "name": name,
        "age": age,
        "gender": gender,
        "phone": phone,
        "email": email,
    }))


async def _register_impl(body: dict):
    async with _client() as c:
        r = await c.post("/api/v1/users/register", json=body)
        if r.status_code == 429:
            click.secho("Registration for this username is in progress — retry in a few seconds.",
                        fg="yellow", err=True)
            sys.exit(1)
        user = _report(r)
    click.secho(f"Registered {user['username']} (id {user['id']})", fg="green")


@main.command()
@click.argument("username")
@click.option("--password", prompt=True, hide_input=True)
@click.option("--remember-me", is_flag=True, help="Keep the session for 30 days instead of 7")
@click.option("--no-save", is_flag=True, help="Print tokens instead of saving them")
def login(username: str, password: str, remember_me: bool, no_save: bool):
    """Log in and store the token pair locally."""
    _run(_login_impl(username, password, remember_me, no_save))


async def _login_impl(username: str, password: str, remember_me: bool, no_save: bool):
    async with _client() as c:
        r = await c.post("/api/v1/users/login", json={
            "username": username,
            "password": password,
            "remember_me": remember_me,
        })
        data = _report(r)

    if no_save:
        click.echo(_pretty_json(data))
        return
    _save_session({
        "access_token": data["access_token"],
        "refresh_token": data["refresh_token"],
    })
    click.secho(f"Logged in as {data['user']['username']}", fg="green")


@main.command()
@click.option("--token", help="Access token (defaults to the saved one)")
def verify(token: Optional[str]):
    """Check whether the access token is still valid."""
    _run(_verify_impl(_token(token, "access_token")))


async def _verify_impl(token: str):
    async with _client() as c:
        r = await c.get("/api/v1/auth/verify", headers={"Authorization": f"Bearer {token}"})
        data = _report(r)
    user = data["user"]
    click.secho(f"Valid — {user['username']} ({user['name']}), remember-me: {user['remember_me']}",
                fg="green")


@main.command()
@click.option("--token", help="Refresh token (defaults to the saved one)")
def refresh(token: Optional[str]):
    """Get a fresh access token."""
    _run(_refresh_impl(_token(token, "refresh_token")))


async def _refresh_impl(token: str):
    async with _client() as c:
        r = await c.post("/api/v1/auth/refresh-token", json={"refresh_token": token})
        data = _report(r)
    session = _load_session()
    session["access_token"] = data["access_token"]
    _save_session(session)
    click.secho("Access token refreshed", fg="green")


@main.command()
@click.option("--token", help="Refresh token (defaults to the saved one)")
def logout(token: Optional[str]):
    """Revoke the session and forget saved tokens."""
    _run(_logout_impl(token or _load_session().get("refresh_token")))


async def _logout_impl(token: Optional[str]):
    async with _client() as c:
        body = {"refresh_token": token} if token else None
        r = await c.post("/api/v1/auth/logout", json=body)
        _report(r)
    path = _session_file()
    if path.exists():
        path.unlink()
    click.secho("Logged out", fg="green")


@main.command("purge-tokens")
def purge_tokens():
    """Delete expired refresh tokens directly in the database."""
    from qureka.services.maintenance import purge_expired_tokens

    removed = _run(purge_expired_tokens())
    click.echo(f"Removed {removed} expired refresh token(s)")


if __name__ == "__main__":
    main()
