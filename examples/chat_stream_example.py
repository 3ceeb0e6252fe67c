"""Interactive streaming chat with memory and a toy tool.

Demonstrates:
- Registering capabilities in a ToolRegistry and toggling them
- Streaming content and citations from a StreamSession
- Cancelling a stream once a reply gets too long
- Carrying the spliced transcript into the next turn

Usage:
    uv run --env-file=.env examples/chat_stream_example.py --provider openrouter --model openai/gpt-4o-mini --web
    uv run examples/chat_stream_example.py --provider openai --model gpt-4o-mini --trace
"""

import argparse
import asyncio
import logging

from toolstream.builtin import InMemoryMemoryStore, MemoryCapability, random_fruit
from toolstream.config import SessionConfig, configure_logging
from toolstream.errors import ToolstreamError
from toolstream.events import CitationsChunk, ContentChunk
from toolstream.message import Message, MessageRole, Transcript
from toolstream.registry import ToolRegistry
from toolstream.session import StreamSession
from toolstream.transport import (
    MistralTransport,
    OpenAITransport,
    OpenRouterTransport,
    Transport,
)

AGENT_ID = "example-agent"

PROVIDERS = {
    "openai": lambda web: OpenAITransport(),
    "openrouter": lambda web: OpenRouterTransport(web_search=web),
    "mistral": lambda web: MistralTransport(),
}


def make_transport(provider: str, web: bool) -> Transport:
    if web and provider != "openrouter":
        raise SystemExit("--web is only supported with the openrouter provider")
    return PROVIDERS[provider](web)


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from toolstream.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


async def stream_turn(
    session: StreamSession, transcript: Transcript, max_chars: int | None,
) -> Transcript:
    reply = []
    citations = []
    async with session.start(transcript) as handle:
        async for chunk in handle:
            if isinstance(chunk, ContentChunk):
                print(chunk.content, end="", flush=True)
                reply.append(chunk.content)
                if max_chars and sum(map(len, reply)) >= max_chars:
                    handle.cancel()
                    print(" [cut off]", end="")
            elif isinstance(chunk, CitationsChunk):
                citations.extend(chunk.citations)
    print()

    for i, citation in enumerate(citations, start=1):
        if citation.url_citation is not None:
            print(f"  [{i}] {citation.url_citation.title or ''} {citation.url_citation.url}")
    outcome = handle.outcome
    for record in outcome.tool_calls:
        print(f"  ({record.display_name}: {record.summary or record.output[:60]})")

    # Keep tool calls and results so the next turn sees them.
    final = outcome.transcripts[-1] if outcome.transcripts else transcript
    return final.extend(Message(role=MessageRole.ASSISTANT, content="".join(reply)))


async def main():
    parser = argparse.ArgumentParser(description="Streaming chat")
    parser.add_argument("--provider", choices=PROVIDERS, default="openai")
    parser.add_argument("--model", default="gpt-4o-mini")
    parser.add_argument("--web", action="store_true")
    parser.add_argument("--fruit", action="store_true", help="enable the random fruit tool")
    parser.add_argument("--trace", action="store_true")
    parser.add_argument("--max-chars", type=int, default=None,
                        help="cancel replies longer than this")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)
    if args.trace:
        setup_tracing("chat-stream")

    memory = MemoryCapability(InMemoryMemoryStore())
    registry = ToolRegistry([memory, random_fruit])
    if args.fruit:
        registry.set_enabled(True, random_fruit)

    transport = make_transport(args.provider, args.web)
    transcript = Transcript()

    print("Streaming chat (Ctrl-D quits)\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        config = SessionConfig(
            system_prompt="You are a concise, helpful assistant.",
            memories=memory.bind(AGENT_ID).memories(),
        )
        session = StreamSession(
            transport, args.model, registry.enabled_tools(AGENT_ID), config,
        )
        transcript = transcript.extend(
            Message(role=MessageRole.USER, content=user_input)
        )
        print("Assistant: ", end="", flush=True)
        try:
            transcript = await stream_turn(session, transcript, args.max_chars)
        except ToolstreamError as e:
            print(f"\n[{e.kind} error] {e}\n")


if __name__ == "__main__":
    asyncio.run(main())
