#!/usr/bin/env python3

"""
Command-line interface for flock-retry
"""

import os
import sys
import logging
import argparse
from typing import List, Optional
from tqdm import tqdm
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from .config import Config
from .core import LockedCommand
from .errors import FlockRetryError

logger = logging.getLogger(__name__)

console = Console(stderr=True)


class WaitStats:
    def __init__(self, path, shared=False, quiet=False):
        self.path = path
        self.shared = shared
        self.quiet = quiet
        self.retries_used = 0
        self.pbar = None

    def update_progress(self, tries, retries):
        """update the waiting bar, created on the first contended attempt"""
        self.retries_used = tries
        if self.quiet:
            return
        if self.pbar is None:
            self.pbar = tqdm(
                total=retries,
                desc=f"waiting for {os.path.basename(self.path)[:30]}",
                unit="s",
                bar_format="{desc:<40} |{bar:40}| {n_fmt}/{total_fmt} retries [{elapsed}]",
                colour="yellow",
                ncols=120,
                file=sys.stderr,
                leave=False
            )
        self.pbar.update(1)

    def close(self):
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def print_summary(self, waited, returncode, command):
        """print summary"""
        self.close()
        if self.quiet:
            return

        table = Table(box=box.ROUNDED, show_header=False, border_style="bright_blue")
        table.add_column("Item", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("lock file", self.path)
        table.add_row("lock mode", "shared" if self.shared else "exclusive")
        table.add_row("retries", f"{self.retries_used:,}")
        table.add_row("waited", f"{waited:.1f} seconds")
        if command:
            status = "[green]✓ 0[/green]" if returncode == 0 else f"[red]× {returncode}[/red]"
            table.add_row("command", " ".join(command))
            table.add_row("exit status", status)

        panel = Panel(
            table,
            title="[bold cyan]lock released[/bold cyan]",
            border_style="bright_blue",
            padding=(1, 2)
        )

        console.print(panel)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='flock-retry',
        description='Run a command while holding an advisory lock on a file'
    )
    parser.add_argument('path', help='Lock file path (created if missing)')
    parser.add_argument('command', nargs=argparse.REMAINDER,
                        help='Command to run while holding the lock')
    parser.add_argument('--retries', type=int,
                        help='Seconds to keep retrying a contended lock (default 60)')
    parser.add_argument('--shared', action='store_true', dest='shared',
                        help='Take a shared lock instead of an exclusive one')
    parser.add_argument('--no-shared', action='store_false', dest='shared',
                        help='Take an exclusive lock even if the config file says shared')
    parser.set_defaults(shared=None)
    parser.add_argument('--mode', help="Open flags, e.g. 'O_CREAT|O_RDWR'")
    parser.add_argument('--config', help=f'Config file (default ./{Config.DEFAULT_CONFIG_FILE})')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('-q', '--quiet', action='store_true', help='No progress bar or summary')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """main"""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    command = list(args.command)
    if command and command[0] == '--':
        command = command[1:]

    stats = None
    try:
        if args.config:
            file_config = Config.load_file(args.config)
        else:
            file_config = Config.load_config(os.getcwd())

        config = Config.merge_config(file_config, vars(args))

        stats = WaitStats(args.path, shared=config.get('shared', False), quiet=args.quiet)
        runner = LockedCommand(
            args.path,
            command,
            retries=config.get('retries'),
            shared=config.get('shared', False),
            mode=config.get('mode'),
            retry_callback=stats.update_progress
        )
        returncode = runner.run()
        if returncode < 0:
            # killed by a signal, report it the way shells do
            returncode = 128 - returncode
        stats.print_summary(runner.waited, returncode, command)
        return returncode
    except (FlockRetryError, OSError) as e:
        if stats is not None:
            stats.close()
        logger.debug("lock run failed", exc_info=True)
        console.print(f"[bold red]flock-retry failed: {str(e)}[/bold red]")
        return 1


if __name__ == '__main__':
    sys.exit(main())
