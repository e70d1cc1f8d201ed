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
"""'punchclock doctor' — Diagnose storage and configuration."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.table import Table

from punchclock.cli.console import check_mark, console
from punchclock.config.properties.backend import BackendProperties
from punchclock.config.properties.storage import StorageProperties
from punchclock.core.config import Config
from punchclock.core.runtime import build_durable_store
from punchclock.kernel.lifecycle import Lifecycle
from punchclock.storage.adapter import StorageAdapter
from punchclock.storage.diagnostics import describe_storage_issue
from punchclock.storage.types import StorageDiagnostics

_MIN_PYTHON = (3, 11)


async def collect_diagnostics(properties: StorageProperties) -> StorageDiagnostics:
    """Probe the configured durable tier through a short-lived StorageAdapter."""
    durable = build_durable_store(properties)
    storage = StorageAdapter(durable, prefix=properties.prefix)
    await storage.start()
    try:
        return await storage.get_diagnostics()
    finally:
        await storage.stop()
        if isinstance(durable, Lifecycle):
            await durable.stop()


@click.command()
@click.pass_obj
def doctor_command(config: Config) -> None:
    """Check the configuration and the durable storage tier."""
    console.print("\n[punchclock]Punchclock Doctor[/punchclock]\n")

    py_version = sys.version_info
    py_ok = py_version >= _MIN_PYTHON
    console.print(f"  {check_mark(py_ok)} Python {py_version.major}.{py_version.minor}.{py_version.micro}")

    console.print("\n  [info]Configuration sources:[/info]")
    for source in config.loaded_sources:
        console.print(f"    [dim]-[/dim] {source}")

    storage_props = config.bind(StorageProperties)
    backend_props = config.bind(BackendProperties)
    console.print(f"\n  [info]Backend:[/info] {backend_props.url}")

    diagnostics = asyncio.run(collect_diagnostics(storage_props))

    table = Table(title="[punchclock]Storage[/punchclock]", border_style="dim")
    table.add_column("Check", style="bold")
    table.add_column("Value")
    table.add_row("Backend", storage_props.backend)
    table.add_row("Key prefix", storage_props.prefix)
    table.add_row("Durable tier available", check_mark(diagnostics.is_durable_available))
    table.add_row("Private mode suspected", "yes" if diagnostics.is_private_mode_suspected else "no")
    table.add_row("Memory entries", str(diagnostics.memory_entry_count))
    table.add_row("Durable entries", str(diagnostics.durable_entry_count))
    console.print()
    console.print(table)

    notice = describe_storage_issue(diagnostics)
    console.print()
    if notice is None and py_ok:
        console.print("  [success]All checks passed![/success]\n")
    else:
        if notice is not None:
            console.print(f"  [warning]{notice.message}[/warning]")
        console.print("  [warning]Some issues found. See above for details.[/warning]\n")
