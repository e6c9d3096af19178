"""
Clustering engine for embedded codes.

Components:
- ClusteringService: breadth (adaptive k-means++ + bisecting) or depth
  (agglomerative) clustering selected by ClusteringMode
- select_k: adaptive cluster-count selection by elbow/silhouette/DB vote
- kmeans: k-means++ seeding with Lloyd iteration
- bisect_clusters: quality-gated splitting toward a target count
- agglomerative_merge: centroid-similarity merging down to a maximum
- Cluster: a candidate theme (member codes + centroid)
- ClusteringConfig: k range, iteration limits, vote weights, bisect gate
"""

from theme_engine.clustering.bisecting import BisectStats, bisect_clusters
from theme_engine.clustering.config import ClusteringConfig
from theme_engine.clustering.hierarchical import agglomerative_merge
from theme_engine.clustering.kmeans import KMeansResult, kmeans, kmeans_plus_plus
from theme_engine.clustering.schemas import Cluster, ClusteringMode
from theme_engine.clustering.selection import KSelection, candidate_ks, select_k
from theme_engine.clustering.service import ClusteringResult, ClusteringService

__all__ = [
    "ClusteringConfig",
    "ClusteringService",
    "ClusteringResult",
    "ClusteringMode",
    "Cluster",
    "KMeansResult",
    "kmeans",
    "kmeans_plus_plus",
    "KSelection",
    "candidate_ks",
    "select_k",
    "BisectStats",
    "bisect_clusters",
    "agglomerative_merge",
]
