"""
Mapping of scraped source results onto analyzable text fragments.

Each supported platform has exactly one extraction rule. The mapping is
pure: it reads the payload and returns AnalysisItem records without
touching any store.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .analyzers.base import AnalysisItem

logger = logging.getLogger(__name__)


class Platform(str, Enum):
    REDDIT = "reddit"
    AMAZON = "amazon"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    TRUSTPILOT = "trustpilot"


@dataclass(frozen=True)
class SourceResult:
    """One scrape result as stored for a collection job."""

    id: str
    platform: str
    payload: Dict[str, Any] = field(default_factory=dict)
    job_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceResult":
        return cls(
            id=str(data["id"]),
            platform=data.get("platform", ""),
            payload=data.get("payload") or data.get("result_data") or {},
            job_id=data.get("job_id"),
        )


def _join(*parts: Optional[str]) -> str:
    return " ".join(p for p in parts if p)


def _item(text, source_type, source_id, result: SourceResult, **metadata) -> AnalysisItem:
    return AnalysisItem(
        text=text,
        source_type=source_type,
        source_id=None if source_id is None else str(source_id),
        source_result_id=result.id,
        metadata={k: v for k, v in metadata.items() if v is not None},
    )


def _reddit(result: SourceResult) -> List[AnalysisItem]:
    data = result.payload
    items = []
    for post in data.get("posts") or []:
        items.append(
            _item(
                _join(post.get("title"), post.get("selftext")),
                "reddit_post",
                post.get("id"),
                result,
                subreddit=post.get("subreddit"),
                author=post.get("author"),
                created_utc=post.get("created_utc"),
                score=post.get("score"),
            )
        )
    for comment in data.get("comments") or []:
        items.append(
            _item(
                comment.get("body"),
                "reddit_comment",
                comment.get("id"),
                result,
                subreddit=comment.get("subreddit"),
                author=comment.get("author"),
                created_utc=comment.get("created_utc"),
                score=comment.get("score"),
            )
        )
    return items


def _amazon(result: SourceResult) -> List[AnalysisItem]:
    data = result.payload
    return [
        _item(
            _join(review.get("title"), review.get("content")),
            "amazon_review",
            review.get("id"),
            result,
            product_id=data.get("product_id") or data.get("asin"),
            rating=review.get("rating"),
            verified_purchase=review.get("verified_purchase"),
            date=review.get("date"),
        )
        for review in data.get("reviews") or []
    ]


def _comments(parent: dict, source_type: str, parent_key: str, result) -> List[AnalysisItem]:
    return [
        _item(
            comment.get("text"),
            source_type,
            comment.get("id"),
            result,
            username=comment.get("username"),
            likes=comment.get("likes_count"),
            date=comment.get("date"),
            **{parent_key: parent.get("id")},
        )
        for comment in parent.get("comments") or []
    ]


def _instagram(result: SourceResult) -> List[AnalysisItem]:
    items = []
    for post in result.payload.get("posts") or []:
        if post.get("caption"):
            items.append(
                _item(
                    post["caption"],
                    "instagram_post",
                    post.get("id"),
                    result,
                    username=post.get("username"),
                    likes=post.get("likes_count"),
                    comments=post.get("comments_count"),
                    date=post.get("date"),
                )
            )
        items.extend(_comments(post, "instagram_comment", "post_id", result))
    return items


def _tiktok(result: SourceResult) -> List[AnalysisItem]:
    items = []
    for video in result.payload.get("videos") or []:
        if video.get("description"):
            items.append(
                _item(
                    video["description"],
                    "tiktok_video",
                    video.get("id"),
                    result,
                    username=video.get("username"),
                    likes=video.get("likes_count"),
                    comments=video.get("comments_count"),
                    shares=video.get("shares_count"),
                    date=video.get("date"),
                )
            )
        items.extend(_comments(video, "tiktok_comment", "video_id", result))
    return items


def _trustpilot(result: SourceResult) -> List[AnalysisItem]:
    data = result.payload
    items = []
    for review in data.get("reviews") or []:
        author = review.get("author") or {}
        items.append(
            _item(
                _join(review.get("title"), review.get("content")),
                "trustpilot_review",
                review.get("id"),
                result,
                business_domain=data.get("business_domain"),
                rating=review.get("rating"),
                date=review.get("date"),
                author=author.get("name"),
                location=author.get("location"),
                verified=review.get("verified"),
            )
        )

        reply = review.get("business_reply") or {}
        if reply.get("content"):
            items.append(
                _item(
                    reply["content"],
                    "trustpilot_business_reply",
                    f"{review.get('id')}_reply",
                    result,
                    business_domain=data.get("business_domain"),
                    review_id=review.get("id"),
                    date=reply.get("date"),
                )
            )
    return items


EXTRACTORS: Dict[Platform, Callable[[SourceResult], List[AnalysisItem]]] = {
    Platform.REDDIT: _reddit,
    Platform.AMAZON: _amazon,
    Platform.INSTAGRAM: _instagram,
    Platform.TIKTOK: _tiktok,
    Platform.TRUSTPILOT: _trustpilot,
}

_missing = set(Platform) - set(EXTRACTORS)
if _missing:
    raise RuntimeError(f"No text extraction rule for platform(s): {sorted(p.value for p in _missing)}")


def extract_items(results: Iterable[SourceResult]) -> List[AnalysisItem]:
    """Flatten source results into analysis items; unknown platforms are skipped."""
    items: List[AnalysisItem] = []
    for result in results:
        try:
            platform = Platform(result.platform)
        except ValueError:
            logger.warning(f"Unknown platform {result.platform!r} for result {result.id}, skipping")
            continue
        fragments = EXTRACTORS[platform](result)
        logger.debug(f"{platform.value} result {result.id}: {len(fragments)} fragment(s)")
        items.extend(fragments)
    return items
