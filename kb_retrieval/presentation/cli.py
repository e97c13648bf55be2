import argparse
import asyncio
import json
import logging
import sys

from kb_retrieval.config.settings import settings
from kb_retrieval.container import configure_container, container
from kb_retrieval.core.errors import InvalidSearchOptions, RetrievalError
from kb_retrieval.core.models.search import (
    DateRange,
    MetadataFilter,
    SearchOptions,
    SearchStrategy,
)
from kb_retrieval.core.services.collection_registry import TenantCollectionRegistry
from kb_retrieval.core.services.search_service import SearchService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kb-retrieval", description="Search tenant knowledge bases"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Run a search query")
    search.add_argument("query")
    search.add_argument("--tenant", required=True)
    search.add_argument(
        "--strategy", choices=[s.value for s in SearchStrategy], default=None
    )
    search.add_argument("-k", type=int, default=None, help="Number of results")
    search.add_argument("--agent-id")
    search.add_argument("--file-type")
    search.add_argument("--date-from", help="ISO-8601 lower upload-date bound")
    search.add_argument("--date-to", help="ISO-8601 upper upload-date bound")
    search.add_argument("--min-similarity", type=float)
    search.add_argument("--semantic-weight", type=float)
    search.add_argument("--keyword-weight", type=float)
    search.add_argument("--no-rerank", action="store_true")
    search.add_argument("--json", action="store_true", help="Print JSON")

    count = commands.add_parser("count", help="Count indexed chunks of a tenant")
    count.add_argument("--tenant", required=True)

    commands.add_parser("collections", help="List collections")
    commands.add_parser("health", help="Check vector index health")
    return parser


def options_from_args(args: argparse.Namespace) -> SearchOptions:
    date_range = None
    if args.date_from or args.date_to:
        if not (args.date_from and args.date_to):
            raise InvalidSearchOptions("--date-from and --date-to must be given together")
        date_range = DateRange(start=args.date_from, end=args.date_to)

    return SearchOptions(
        strategy=SearchStrategy.parse(args.strategy) if args.strategy else None,
        k=args.k,
        filter=MetadataFilter(
            agent_id=args.agent_id, file_type=args.file_type, date_range=date_range
        ),
        min_similarity=args.min_similarity,
        semantic_weight=args.semantic_weight,
        keyword_weight=args.keyword_weight,
        enable_reranking=False if args.no_rerank else None,
    )


async def cmd_search(args: argparse.Namespace) -> None:
    service = container.resolve(SearchService)
    response = await service.search(args.tenant, args.query, options_from_args(args))

    if args.json:
        print(
            json.dumps(
                {
                    "query": args.query,
                    "strategy": response.strategy,
                    "degraded": response.degraded,
                    "results": [
                        {
                            "id": r.id,
                            "content": r.text,
                            "similarity": r.similarity,
                            "metadata": r.metadata,
                        }
                        for r in response.results
                    ],
                    "total": len(response.results),
                },
                ensure_ascii=False,
                indent=2,
            )
        )
        return

    if response.degraded:
        print(f"(degraded: {', '.join(response.failed_branches)} branch failed)")
    for i, r in enumerate(response.results, 1):
        print(f"{i}. [{r.similarity:.3f}] {r.file_name} #{r.id}")
        print(f"   {r.text[:200]}")
    if not response.results:
        print("No results")


async def cmd_count(args: argparse.Namespace) -> None:
    service = container.resolve(SearchService)
    print(await service.document_count(args.tenant))


async def cmd_collections(args: argparse.Namespace) -> None:
    registry = container.resolve(TenantCollectionRegistry)
    for name in await registry.list_collections():
        print(name)


async def cmd_health(args: argparse.Namespace) -> None:
    registry = container.resolve(TenantCollectionRegistry)
    health = await registry.health_check()
    print(json.dumps(health, default=str))
    if health["status"] != "healthy":
        sys.exit(1)


COMMANDS = {
    "search": cmd_search,
    "count": cmd_count,
    "collections": cmd_collections,
    "health": cmd_health,
}


async def run(args: argparse.Namespace) -> None:
    """Run one command, closing the network clients it opened."""
    try:
        await COMMANDS[args.command](args)
    finally:
        await container.aclose()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.log_level, format="%(message)s")

    configure_container(settings)
    try:
        asyncio.run(run(args))
    except RetrievalError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(2 if not e.retryable else 1)


if __name__ == "__main__":
    main()
