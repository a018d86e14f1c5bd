"""citesearch - conversational web search with cited answers.

Simple CLI for running the service and asking questions against it.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import AsyncIterator, Callable

from citesearch.client import SearchSession, TurnState
from citesearch.config import get_settings
from citesearch.errors import CiteSearchError
from citesearch.models.events import (
    Done,
    Error,
    OutboundEvent,
    ReformulatedQuery,
    Sources,
    TextDelta,
)
from citesearch.models.schemas import ConversationEntry


def print_event(event: OutboundEvent, state: TurnState) -> None:
    if isinstance(event, ReformulatedQuery):
        print(f"[~] Searching for: {event.query}")
    elif isinstance(event, Sources):
        print(f"[*] {len(event.sources)} sources found\n")
    elif isinstance(event, TextDelta):
        print(event.content, end="", flush=True)
    elif isinstance(event, Done):
        print("\n")
        for citation in state.citations:
            print(f"  [{citation.index}] {citation.title}\n      {citation.url}")
        uncited = [
            (i, s) for i, s in enumerate(state.sources, 1)
            if i not in {c.index for c in state.citations}
        ]
        if uncited:
            print("  Other sources:")
            for index, source in uncited:
                print(f"  [{index}] {source.title}\n      {source.url}")
    elif isinstance(event, Error):
        print(f"\n[!] Error: {event.error}")
        if event.details:
            print(f"    {event.details}")


class LocalSession:
    """Runs turns in-process with the configured providers, no server needed."""

    def __init__(self) -> None:
        from citesearch.services import logger as log_service
        from citesearch.services.orchestrator import AnswerOrchestrator

        settings = get_settings()
        log_service.configure_logging(settings)
        self.orchestrator = AnswerOrchestrator.from_settings(settings)
        self.history: list[ConversationEntry] = []
        self.last_turn: TurnState | None = None

    def reset(self) -> None:
        self.history.clear()
        self.last_turn = None

    async def ask(self, query: str) -> AsyncIterator[OutboundEvent]:
        state = TurnState(query=query.strip())
        self.last_turn = state
        async for event in self.orchestrator.answer(query, self.history):
            state.apply(event)
            yield event
        if state.done:
            self.history.append(state.to_entry())


async def run_turn(session: SearchSession | LocalSession, query: str) -> bool:
    """Run one turn, printing events as they arrive. Returns success."""
    try:
        async for event in session.ask(query):
            print_event(event, session.last_turn)
    except CiteSearchError as e:
        print(f"[!] {e.message}")
        if e.details:
            print(f"    {e.details}")
        return False
    turn = session.last_turn
    return bool(turn and turn.done)


async def run_chat(
    session: SearchSession | LocalSession,
    read: Callable[[str], str] = input,
) -> None:
    print("Ask a question (empty line or Ctrl-D to quit, /reset to clear history).")
    while True:
        try:
            query = read("> ").strip()
        except EOFError:
            break
        if not query:
            break
        if query == "/reset":
            session.reset()
            print("[*] Conversation cleared.")
            continue
        await run_turn(session, query)


def _make_session(args: argparse.Namespace) -> SearchSession | LocalSession:
    if args.local:
        return LocalSession()
    return SearchSession(args.url, timeout=args.timeout)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="citesearch - cited web answers")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    for name, help_text in (("ask", "Ask a single question"), ("chat", "Interactive session")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--url", default="http://localhost:8000", help="Service base URL")
        sub.add_argument("--timeout", type=float, default=60.0, help="Read timeout in seconds")
        sub.add_argument(
            "--local", action="store_true", help="Run in-process instead of calling the service"
        )
        if name == "ask":
            sub.add_argument("query", help="Question to ask")

    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("citesearch.main:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    try:
        session = _make_session(args)
    except CiteSearchError as e:
        print(f"[!] {e.message}")
        if e.details:
            print(f"    {e.details}")
        return 1

    if args.command == "ask":
        ok = asyncio.run(run_turn(session, args.query))
        return 0 if ok else 1

    asyncio.run(run_chat(session))
    return 0


if __name__ == "__main__":
    sys.exit(main())
