# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""'punchclock session' — Inspect and refresh the stored session."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime

import click
from rich.table import Table

from punchclock.auth.session import SessionState
from punchclock.cli.console import check_mark, console
from punchclock.core.config import Config
from punchclock.core.runtime import SessionRuntime


async def _report(config: Config, refresh: bool) -> bool:
    async with SessionRuntime(config) as runtime:
        session = (await runtime.auth_provider.get_session()).session
        if session is None:
            console.print("  [warning]No active session[/warning]")
        else:
            now = time.time()
            state = session.state_at(now, runtime.guard.safety_margin)
            table = Table(title="[punchclock]Session[/punchclock]", border_style="dim")
            table.add_column("Field", style="bold")
            table.add_column("Value")
            table.add_row("User", session.user_id)
            table.add_row("Email", session.email or "-")
            table.add_row("Expires at", datetime.fromtimestamp(session.expires_at).isoformat(timespec="seconds"))
            table.add_row("Time until expiry", f"{session.time_until_expiry(now):.0f}s")
            table.add_row("State", state.value)
            table.add_row("Usable without refresh", check_mark(state is SessionState.VALID))
            console.print(table)

        if not refresh:
            return True
        refreshed = await runtime.guard.refresh()
        if refreshed:
            console.print("  [success]Session refreshed[/success]")
        else:
            console.print("  [error]Session refresh failed[/error]")
        return refreshed


@click.command()
@click.option("--refresh", is_flag=True, help="Force a token refresh.")
@click.pass_context
def session_command(ctx: click.Context, refresh: bool) -> None:
    """Show the stored session and whether it can be used."""
    console.print("\n[punchclock]Punchclock Session[/punchclock]\n")
    if not asyncio.run(_report(ctx.obj, refresh)):
        ctx.exit(1)
