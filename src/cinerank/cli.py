import argparse
import json
import logging

import numpy as np

from .confidence import z_for_confidence
from .config import DEFAULT_TOP_K
from .director_affinity import compute_director_scores
from .latent_factor import LatentFactorModel
from .rating import build_quality_table
from .recommender import RankingResult, clamp_top_k, quality_ranking
from .snapshot import CatalogSnapshot, RecommendationMovieScore, load_snapshot
from .strategies import (
    STRATEGIES,
    HeuristicStrategy,
    RecommendationRequest,
    get_strategy,
)

logger = logging.getLogger(__name__)


def _load_or_exit(path: str) -> CatalogSnapshot:
    try:
        return load_snapshot(path)
    except (OSError, ValueError) as exc:
        logger.error(f"Could not load snapshot: {exc}")
        raise SystemExit(1)


def _titles(snapshot: CatalogSnapshot) -> dict[int, str]:
    return {m.id: m.title or f"#{m.id}" for m in snapshot.movies}


def _build_request(snapshot: CatalogSnapshot, args: argparse.Namespace) -> RecommendationRequest:
    return RecommendationRequest(
        user_id=args.user,
        movies=snapshot.movies,
        reviews=snapshot.reviews,
        likes=snapshot.likes,
        selected_genres=args.genres or (),
        preferred_genres=snapshot.preferred_genres.get(args.user, ()),
        top_k=args.top_k,
    )


def _output_recommendations(
    recs: list[RecommendationMovieScore],
    titles: dict[int, str],
    args: argparse.Namespace,
    result: RankingResult | None = None,
) -> None:
    """Log recommendations in the requested format."""
    if args.format == 'json':
        if result is not None:
            payload = result.to_dict()
        else:
            payload = {"rankedMovies": [r.to_dict() for r in recs]}
        logger.info(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    logger.info(f"\nTop {len(recs)} recommendations for user {args.user} ({args.strategy}):")
    for i, rec in enumerate(recs, 1):
        logger.info(f"{i}. {titles.get(rec.movie_id, rec.movie_id)} - Score: {rec.score:.3f}")
        if result is not None and rec.movie_id in result.components:
            parts = ", ".join(
                f"{name} {value:.3f}" for name, value in result.components[rec.movie_id].items() if value
            )
            logger.info(f"   Why: {parts or 'catalog quality'}")

    if result is not None and not result.has_preference_signals:
        logger.info("(No likes or ratings yet: showing the highest-quality movies)")


def cmd_recommend(args: argparse.Namespace) -> None:
    """Rank movies for one user with the selected strategy."""
    snapshot = _load_or_exit(args.snapshot)
    request = _build_request(snapshot, args)

    kwargs = {}
    if args.strategy == 'latent' and args.seed is not None:
        seed = args.seed
        kwargs["model_factory"] = lambda: LatentFactorModel(rng=np.random.default_rng(seed))

    strategy = get_strategy(args.strategy, **kwargs)
    if isinstance(strategy, HeuristicStrategy):
        result = strategy.rank(request)
        _output_recommendations(result.ranked_movies, _titles(snapshot), args, result)
    else:
        _output_recommendations(strategy.recommend(request), _titles(snapshot), args)


def cmd_directors(args: argparse.Namespace) -> None:
    """Show the user's director affinities."""
    snapshot = _load_or_exit(args.snapshot)
    try:
        z = z_for_confidence(args.confidence)
    except ValueError as exc:
        logger.error(str(exc))
        raise SystemExit(1)

    interactions = snapshot.interactions_for(args.user)
    if not interactions.has_preference_signals:
        logger.error(f"No likes or ratings for user {args.user}.")
        raise SystemExit(1)

    scores = compute_director_scores(
        snapshot.movies,
        interactions.liked_movie_ids,
        interactions.user_ratings_by_movie,
        z=z,
    )
    if args.format == 'json':
        logger.info(json.dumps([s.to_dict() for s in scores], indent=2, ensure_ascii=False))
        return

    logger.info(f"\nDirector affinity for user {args.user}:")
    for i, s in enumerate(scores[:args.limit], 1):
        logger.info(
            f"{i}. {s.director} - Score: {s.score:.3f} "
            f"(liked {s.liked_count}/{s.seen_count}, avg {s.avg_quality:.2f})"
        )


def cmd_quality(args: argparse.Namespace) -> None:
    """Show the cold-start chart: catalog ranked by smoothed quality."""
    snapshot = _load_or_exit(args.snapshot)
    quality = build_quality_table(snapshot.movies)
    chart = quality_ranking(snapshot.movies, quality, clamp_top_k(args.top_k))
    titles = _titles(snapshot)

    logger.info(f"\nCatalog average {quality.global_average:.2f}; top {len(chart)} by quality:")
    for i, rec in enumerate(chart, 1):
        logger.info(f"{i}. {titles.get(rec.movie_id, rec.movie_id)} - {rec.score:.2f}")


def main():
    parser = argparse.ArgumentParser(description="Movie recommendation ranking engine")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rec_parser = subparsers.add_parser("recommend", help="Generate recommendations")
    rec_parser.add_argument("snapshot", help="Path to a catalog snapshot JSON file")
    rec_parser.add_argument("--user", type=int, required=True, help="User id")
    rec_parser.add_argument("--strategy", choices=sorted(STRATEGIES), default='heuristic',
                            help="Ranking strategy")
    rec_parser.add_argument("--top-k", type=int, default=DEFAULT_TOP_K, help="Number of recommendations")
    rec_parser.add_argument("--genres", nargs="+", help="Selected genres (defaults to stored preferences)")
    rec_parser.add_argument("--seed", type=int, help="Random seed for the latent strategy")
    rec_parser.add_argument("--format", choices=['text', 'json'], default='text', help="Output format")
    rec_parser.set_defaults(func=cmd_recommend)

    dir_parser = subparsers.add_parser("directors", help="Show director affinity scores")
    dir_parser.add_argument("snapshot", help="Path to a catalog snapshot JSON file")
    dir_parser.add_argument("--user", type=int, required=True, help="User id")
    dir_parser.add_argument("--confidence", type=float, default=0.9,
                            help="One-sided confidence for the like-ratio lower bound (default: 0.9)")
    dir_parser.add_argument("--limit", type=int, default=20, help="Directors to show")
    dir_parser.add_argument("--format", choices=['text', 'json'], default='text', help="Output format")
    dir_parser.set_defaults(func=cmd_directors)

    quality_parser = subparsers.add_parser("quality", help="Rank the catalog by smoothed quality")
    quality_parser.add_argument("snapshot", help="Path to a catalog snapshot JSON file")
    quality_parser.add_argument("--top-k", type=int, default=DEFAULT_TOP_K, help="Number of movies")
    quality_parser.set_defaults(func=cmd_quality)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()
