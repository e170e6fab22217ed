"""
pm upgrade command (-U).

Collect updates for unpinned plugins, review them one by one and apply
the approved ones.
"""

from typing import Any

from pm.commands.common import load_command_registry, load_command_settings
from tether.plugin.update import Decision, UpdateEngine, UpdateInfo, format_update

ANSWERS = {
    "y": Decision.APPROVE,
    "yes": Decision.APPROVE,
    "n": Decision.SKIP,
    "no": Decision.SKIP,
    "": Decision.SKIP,
    "q": Decision.ABORT,
    "quit": Decision.ABORT,
}


def prompt_decision(info: UpdateInfo, index: int, total: int) -> Decision:
    """
    Show an update and ask whether to apply it.

    Args:
        info: Update to show
        index: 1-based position of the update
        total: Number of updates

    Returns:
        Decision for the update
    """
    print()
    print("\n".join(format_update(info)))
    print()

    while True:
        answer = input(f"[{index}/{total}] Update {info.name}? (y)es / (n)o / (q)uit: ")
        decision = ANSWERS.get(answer.strip().lower())
        if decision is not None:
            return decision
        print("Please answer y, n or q.")


def upgrade_command(args: Any) -> int:
    """
    Execute upgrade command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    settings = load_command_settings(args)
    registry = load_command_registry(settings)

    print("Checking for updates...")
    engine = UpdateEngine(settings.install_dir, settings.lockfile)
    updates = engine.collect(registry)

    if not updates:
        print("All plugins up to date")
        return 0

    print(f"Found {len(updates)} update(s)")

    if args.noconfirm:
        for info in updates:
            print("\n".join(format_update(info)))
        approved = updates
    else:
        positions = {info.identity: i for i, info in enumerate(updates, start=1)}
        approved = engine.review(
            updates, lambda info: prompt_decision(info, positions[info.identity], len(updates))
        )

    if not approved:
        print("No updates applied")
        return 0

    print(f"Applying {len(approved)} update(s)...")
    engine.apply(approved)

    print(f"Updated {len(approved)} plugin(s)")
    return 0
