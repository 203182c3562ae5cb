"""
Render memories for inclusion in an agent prompt.
"""

from typing import TYPE_CHECKING, Iterable

from .schemas import MemoryRecord

if TYPE_CHECKING:
    from .manager import TierManager

CRITICAL_IMPORTANCE = 0.8


def format_memory(record: MemoryRecord) -> str:
    return f"[{record.created_at.isoformat()}] ({record.importance:.2f}): {record.content}"


def format_memories_for_prompt(
    records: Iterable[MemoryRecord],
    max_chars: int = 2000,
) -> str:
    """
    Format memories for inclusion in an agent prompt.

    Args:
        records: Memories to format, in the order they should appear
        max_chars: Maximum characters to include

    Returns:
        Formatted string for prompt inclusion
    """
    lines = []
    total_chars = 0

    for record in records:
        line = f"- {record.content}"
        if total_chars + len(line) > max_chars:
            break
        lines.append(line)
        total_chars += len(line) + 1

    return "\n".join(lines)


def _section(title: str, records: list[MemoryRecord], empty: str) -> list[str]:
    lines = [title]
    if records:
        lines.extend(f"  • {format_memory(r)}" for r in records)
    else:
        lines.append(f"  {empty}")
    return lines


def compile_context(
    manager: "TierManager",
    core_limit: int = 3,
    working_limit: int = 5,
    critical_threshold: float = CRITICAL_IMPORTANCE,
) -> str:
    """
    Overview of the manager's tiers: the first core memories, the most recent
    working memories and everything at or above critical_threshold.
    """
    core = list(manager.core.entries())
    working = list(manager.working.entries())
    archival = list(manager.archival)
    everything = core + working + archival
    critical = [r for r in everything if r.importance >= critical_threshold]

    lines = [f"=== Memory Overview (Total: {len(everything)}) ===", ""]
    lines += _section(
        f"Core Knowledge ({len(core)} entries):",
        core[:core_limit],
        "No core memories available.",
    )
    lines.append("")
    lines += _section(
        f"Recent Context ({len(working)} entries):",
        working[-working_limit:] if working_limit > 0 else [],
        "No working memories available.",
    )
    lines.append("")
    lines += _section(
        f"Critical Information (Importance >= {critical_threshold:.1f}):",
        critical,
        "No critical information found.",
    )
    return "\n".join(lines)
