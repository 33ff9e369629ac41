"""Partition a batch into redundancy groups and summarise the result."""

from __future__ import annotations

from typing import Any, Dict, Sequence

from tqdm import tqdm

from ..config import ClusterConfig
from ..io.models import ImageRecord, SimilarityGroup
from .similarity import Edge, pairwise_scores
from .unionfind import UnionFind


def build_similarity_edges(
    images: Sequence[ImageRecord], config: ClusterConfig | None = None
) -> list[Edge]:
    """Return all pairwise similarity edges on or above the link threshold."""
    if len(images) < 2:
        return []
    edges: list[Edge] = []
    for i, j, score in tqdm(
        pairwise_scores(images, config), desc="Scoring similarities", unit="pair", leave=False
    ):
        edges.append((i, j, float(score)))
    return edges


def cluster_with_edges(
    images: Sequence[ImageRecord], config: ClusterConfig | None = None
) -> tuple[list[SimilarityGroup], list[Edge]]:
    """Return the redundancy groups of *images* and the edges that formed them.

    Groups are the connected components of the similarity graph, so chains of
    similar images merge even when their endpoints fall below the threshold.
    Records sharing a URL are the same image and always end up together.
    """
    edges = build_similarity_edges(images, config)
    uf = UnionFind(len(images))
    for i, j, _ in edges:
        uf.union(i, j)

    first_seen: Dict[str, int] = {}
    for index, image in enumerate(images):
        anchor = first_seen.setdefault(image.image_url, index)
        if anchor != index:
            uf.union(anchor, index)

    groups = [
        SimilarityGroup(
            members=tuple(images[index] for index in members),
            positions=tuple(members),
        )
        for members in uf.groups()
    ]
    return groups, edges


def cluster(
    images: Sequence[ImageRecord], config: ClusterConfig | None = None
) -> list[SimilarityGroup]:
    """Partition *images* into redundancy groups; an empty batch gives no groups."""
    groups, _ = cluster_with_edges(images, config)
    return groups


def group_report(
    groups: Sequence[SimilarityGroup],
    edges: Sequence[Edge],
    threshold: float,
) -> Dict[str, Any]:
    """Return summary metrics for a clustering run."""
    return {
        "images": sum(len(group) for group in groups),
        "groups": len(groups),
        "pairs": len(edges),
        "largest_group": max((len(group) for group in groups), default=0),
        "threshold": float(threshold),
    }
