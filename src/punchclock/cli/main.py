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
"""Punchclock CLI — session and storage diagnostics."""

from __future__ import annotations

import click

from punchclock.cli.console import print_banner
from punchclock.core.config import Config
from punchclock.logging.structlog_adapter import StructlogAdapter


class PunchclockCLI(click.Group):
    """Custom Click group that shows the Punchclock banner on help."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        print_banner()
        super().format_help(ctx, formatter)


@click.group(cls=PunchclockCLI)
@click.version_option(package_name="punchclock")
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Directory holding punchclock.yaml.",
)
@click.option("--profile", "profiles", multiple=True, help="Active configuration profile (repeatable).")
@click.option("-v", "--verbose", is_flag=True, help="Emit library logs.")
@click.pass_context
def cli(ctx: click.Context, base_dir: str, profiles: tuple[str, ...], verbose: bool) -> None:
    """Punchclock — session resilience diagnostics."""
    config = Config.from_sources(base_dir, active_profiles=list(profiles))
    if verbose:
        StructlogAdapter().configure(config)
    ctx.obj = config


from punchclock.cli.doctor import doctor_command  # noqa: E402
from punchclock.cli.session import session_command  # noqa: E402

cli.add_command(doctor_command, name="doctor")
cli.add_command(session_command, name="session")
