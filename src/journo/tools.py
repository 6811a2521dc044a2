"""MCP tool definitions wrapping the journal engine."""

from __future__ import annotations

from typing import Any

from .engine import (
    BulletNotFoundError,
    IndexFailure,
    InvalidStateTransition,
    JournalEngine,
    JournalError,
    MigrationError,
    StorageFailure,
    as_date,
)
from .models import BulletType, DateRange, TaskState, format_date

_DATE = {"type": "string", "description": "Date in YYYY-MM-DD format"}
_BULLET_TYPES = [t.value for t in BulletType]
_TASK_STATES = [s.value for s in TaskState]


def make_tools(engine: JournalEngine) -> dict[str, dict]:
    """Create MCP tool definitions for the journal engine.

    Returns:
        Dict mapping tool names to their definitions.
    """

    tools = {}

    # ========== journal_write ==========
    tools["journal_write"] = {
        "name": "journal_write",
        "description": (
            "Replace a day's entry. Content uses '# Tasks', '# Events', '# Notes', '# Priority', "
            "'# Inspiration', '# Insights', '# Missteps' sections with one '- ' bullet per line; "
            "tasks take [ ], [x], [>] or [<]. Empty content removes the entry."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "date": _DATE,
                "content": {
                    "type": "string",
                    "description": "Full entry text",
                },
            },
            "required": ["date", "content"],
        },
    }

    # ========== journal_read ==========
    tools["journal_read"] = {
        "name": "journal_read",
        "description": "Read one day's entry with bullet ids and counts.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "date": _DATE,
                "include_content": {
                    "type": "boolean",
                    "description": "Include the canonical entry text (default: true)",
                    "default": True,
                },
            },
            "required": ["date"],
        },
    }

    # ========== journal_range ==========
    tools["journal_range"] = {
        "name": "journal_range",
        "description": "Entries and summed counts over a week, a month or a custom date range.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "scope": {
                    "type": "string",
                    "enum": ["week", "month", "custom"],
                    "description": "week: 7 days from 'date'; month: the month containing 'date'; custom: date_from..date_to",
                },
                "date": _DATE,
                "date_from": {"type": "string", "description": "Start date (custom scope)"},
                "date_to": {"type": "string", "description": "End date (custom scope)"},
                "include_entries": {
                    "type": "boolean",
                    "description": "Include every entry, not just the totals (default: false)",
                    "default": False,
                },
            },
            "required": ["scope"],
        },
    }

    # ========== journal_search ==========
    tools["journal_search"] = {
        "name": "journal_search",
        "description": "Full-text search over entries, returning matching dates.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search text",
                },
                "mode": {
                    "type": "string",
                    "enum": ["token", "substring"],
                    "description": "token: whole words, best match first; substring: anywhere, newest first",
                    "default": "token",
                },
                "date_from": {"type": "string", "description": "Start date filter"},
                "date_to": {"type": "string", "description": "End date filter"},
                "limit": {
                    "type": "integer",
                    "description": "Maximum results (default: 100)",
                    "default": 100,
                },
            },
            "required": ["query"],
        },
    }

    # ========== term_frequency ==========
    tools["term_frequency"] = {
        "name": "term_frequency",
        "description": "How many entries contain a term, or the most frequent terms when no term is given.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "term": {"type": "string", "description": "Term to look up (case-insensitive)"},
                "limit": {
                    "type": "integer",
                    "description": "Number of top terms (when no term is given)",
                    "default": 20,
                },
            },
        },
    }

    # ========== cross_references ==========
    tools["cross_references"] = {
        "name": "cross_references",
        "description": "[[YYYY-MM-DD]] links from a day's entry, and links to it from other entries.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "date": _DATE,
                "direction": {
                    "type": "string",
                    "enum": ["outgoing", "incoming", "both"],
                    "default": "both",
                },
            },
            "required": ["date"],
        },
    }

    # ========== add_bullet ==========
    tools["add_bullet"] = {
        "name": "add_bullet",
        "description": "Append one bullet to a day's entry.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "date": _DATE,
                "type": {"type": "string", "enum": _BULLET_TYPES},
                "content": {"type": "string", "description": "Single line of text"},
                "task_state": {
                    "type": "string",
                    "enum": ["pending", "completed", "scheduled"],
                    "description": "Initial state (tasks only, default: pending)",
                },
            },
            "required": ["date", "type", "content"],
        },
    }

    # ========== set_task_state ==========
    tools["set_task_state"] = {
        "name": "set_task_state",
        "description": "Complete, schedule or reopen a task. Use migrate_task to migrate.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "date": _DATE,
                "bullet_id": {"type": "string", "description": "Task id (e.g., task-2)"},
                "state": {"type": "string", "enum": ["pending", "completed", "scheduled"]},
            },
            "required": ["date", "bullet_id", "state"],
        },
    }

    # ========== migrate_task ==========
    tools["migrate_task"] = {
        "name": "migrate_task",
        "description": "Mark an open task migrated and carry a pending copy to another date.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "source_date": _DATE,
                "bullet_id": {"type": "string", "description": "Task id on the source date (e.g., task-2)"},
                "target_date": _DATE,
            },
            "required": ["source_date", "bullet_id", "target_date"],
        },
    }

    # ========== journal_stats ==========
    tools["journal_stats"] = {
        "name": "journal_stats",
        "description": "Totals across the whole journal.",
        "inputSchema": {"type": "object", "properties": {}},
    }

    # ========== rebuild_index ==========
    tools["rebuild_index"] = {
        "name": "rebuild_index",
        "description": "Discard the index and rebuild it from the stored entries.",
        "inputSchema": {"type": "object", "properties": {}},
    }

    return tools


def _range_from_arguments(arguments: dict[str, Any]) -> DateRange:
    scope = arguments["scope"]
    if scope == "week":
        return DateRange.week(as_date(arguments["date"]))
    if scope == "month":
        day = as_date(arguments["date"])
        return DateRange.month(day.year, day.month)
    if scope == "custom":
        return DateRange(as_date(arguments["date_from"]), as_date(arguments["date_to"]))
    raise ValueError(f"Invalid scope: {scope}")


async def execute_tool(engine: JournalEngine, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Execute a journal tool and return the result.

    Args:
        engine: JournalEngine instance
        name: Tool name
        arguments: Tool arguments

    Returns:
        Result dict with success status and data or error
    """
    try:
        if name == "journal_write":
            entry = engine.write(arguments["date"], arguments["content"])
            result = engine.last_write
            response: dict[str, Any] = {
                "success": True,
                "date": format_date(as_date(arguments["date"])),
                "entry": entry.to_dict() if entry else None,
                "message": "Entry saved" if entry else "Entry removed",
            }
            if result is not None:
                response["warnings"] = [str(w) for w in result.warnings]
                response["hook_failures"] = [str(f) for f in result.hook_failures]
            return response

        elif name == "journal_read":
            entry = engine.read(arguments["date"])
            if entry is None:
                return {
                    "success": False,
                    "error": f"No entry for {arguments['date']}",
                    "error_type": "not_found",
                }
            response = {"success": True, "entry": entry.to_dict()}
            if arguments.get("include_content", True):
                response["content"] = engine.read_content(arguments["date"])
            return response

        elif name == "journal_range":
            date_range = _range_from_arguments(arguments)
            response = {
                "success": True,
                "scope": date_range.scope.value,
                "totals": engine.aggregate(date_range),
            }
            if arguments.get("include_entries", False):
                response["entries"] = [e.to_dict() for e in engine.entries_in_range(date_range)]
            return response

        elif name == "journal_search":
            dates = engine.search(
                query=arguments["query"],
                mode=arguments.get("mode", "token"),
                date_from=arguments.get("date_from"),
                date_to=arguments.get("date_to"),
                limit=arguments.get("limit", 100),
            )
            return {
                "success": True,
                "count": len(dates),
                "dates": [format_date(d) for d in dates],
            }

        elif name == "term_frequency":
            term = arguments.get("term")
            if term:
                record = engine.term_frequency(term)
                return {
                    "success": True,
                    "term": term.lower(),
                    "record": record.to_dict() if record else None,
                }
            records = engine.top_terms(limit=arguments.get("limit", 20))
            return {
                "success": True,
                "count": len(records),
                "terms": [r.to_dict() for r in records],
            }

        elif name == "cross_references":
            direction = arguments.get("direction", "both")
            response = {"success": True, "date": arguments["date"]}
            if direction in ("outgoing", "both"):
                response["outgoing"] = [r.to_dict() for r in engine.cross_references(arguments["date"])]
            if direction in ("incoming", "both"):
                response["incoming"] = [r.to_dict() for r in engine.backlinks(arguments["date"])]
            return response

        elif name == "add_bullet":
            state = arguments.get("task_state")
            entry = engine.add_bullet(
                arguments["date"],
                BulletType(arguments["type"]),
                arguments["content"],
                task_state=TaskState(state) if state else None,
            )
            added = entry.bullets_of(BulletType(arguments["type"]))[-1]
            return {
                "success": True,
                "bullet": added.to_dict(),
                "message": f"Added {added.bullet_id} to {format_date(entry.date)}",
            }

        elif name == "set_task_state":
            entry = engine.set_task_state(
                arguments["date"],
                arguments["bullet_id"],
                TaskState(arguments["state"]),
            )
            return {
                "success": True,
                "bullet": entry.find(arguments["bullet_id"]).to_dict(),
            }

        elif name == "migrate_task":
            source, target = engine.migrate(
                arguments["source_date"],
                arguments["bullet_id"],
                arguments["target_date"],
            )
            return {
                "success": True,
                "source": source.to_dict(),
                "target": target.to_dict(),
                "message": f"Migrated {arguments['bullet_id']} to {format_date(target.date)}",
            }

        elif name == "journal_stats":
            return {
                "success": True,
                **engine.stats(),
            }

        elif name == "rebuild_index":
            result = engine.rebuild_index()
            return {
                "success": True,
                **result,
            }

        else:
            return {
                "success": False,
                "error": f"Unknown tool: {name}",
            }

    except BulletNotFoundError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "bullet_not_found",
            "suggestion": "Use journal_read to see the bullet ids of an entry",
        }

    except InvalidStateTransition as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "invalid_state_transition",
        }

    except MigrationError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "migration_failed",
            "side": e.side,
            "compensated": e.compensated,
        }

    except StorageFailure as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "storage_failure",
            "suggestion": "The previous entry content is unchanged",
        }

    except IndexFailure as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "index_failure",
            "suggestion": "The previous entry content is unchanged; rebuild_index can resynchronize the index",
        }

    except JournalError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "journal_error",
        }

    except (KeyError, ValueError) as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "invalid_arguments",
        }

    except Exception as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "unexpected_error",
        }
