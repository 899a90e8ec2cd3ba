"""
JSON persistence of trained ensembles and a plain-text tree dump.

Floats are written with ``repr`` precision by the ``json`` module, so a
save/load round trip reproduces every threshold, leaf value and weight
exactly.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .config import Config
from .ensemble import Ensemble
from .errors import ConfigError, DataError
from .tree import DecisionTree, InternalNode, LeafNode, TreeNode

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

PathLike = Union[str, Path]


def node_to_dict(node: TreeNode) -> Dict[str, Any]:
    if isinstance(node, InternalNode):
        return {
            "feature_index": node.feature_index,
            "threshold": node.threshold,
            "left": node.left,
            "right": node.right,
            "gain": node.gain,
            "n_samples": node.n_samples,
            "depth": node.depth,
        }
    return {"value": node.value, "n_samples": node.n_samples, "depth": node.depth}


def node_from_dict(data: Dict[str, Any]) -> TreeNode:
    if "value" in data:
        return LeafNode(
            value=float(data["value"]),
            n_samples=int(data.get("n_samples", 0)),
            depth=int(data.get("depth", 0)),
        )
    return InternalNode(
        feature_index=int(data["feature_index"]),
        threshold=float(data["threshold"]),
        left=int(data["left"]),
        right=int(data["right"]),
        gain=float(data.get("gain", 0.0)),
        n_samples=int(data.get("n_samples", 0)),
        depth=int(data.get("depth", 0)),
    )


def ensemble_to_dict(ensemble: Ensemble) -> Dict[str, Any]:
    return {
        "format_version": FORMAT_VERSION,
        "loss": ensemble.loss.value,
        "baseline": ensemble.baseline,
        "n_features": ensemble.n_features,
        "feature_names": ensemble.feature_names,
        "config": ensemble.config.to_dict() if ensemble.config is not None else None,
        "trees": [
            {"weight": weight, "nodes": [node_to_dict(node) for node in tree.nodes]}
            for tree, weight in ensemble.trees
        ],
    }


def ensemble_from_dict(data: Dict[str, Any]) -> Ensemble:
    """
    Rebuild a frozen ensemble from ``ensemble_to_dict`` output.

    Raises:
        DataError: If the document is malformed.
    """
    try:
        version = data.get("format_version", FORMAT_VERSION)
        if version != FORMAT_VERSION:
            raise DataError(f"Unsupported model format version {version}")

        config = Config.from_dict(data["config"]) if data.get("config") is not None else None
        ensemble = Ensemble(
            int(data["n_features"]),
            loss=data["loss"],
            baseline=float(data["baseline"]),
            config=config,
            feature_names=data.get("feature_names"),
        )
        for entry in data["trees"]:
            tree = DecisionTree([node_from_dict(node) for node in entry["nodes"]])
            ensemble.append(tree, float(entry["weight"]))
    except DataError:
        raise
    except (ConfigError, AttributeError, KeyError, TypeError, ValueError) as exc:
        raise DataError(f"Malformed model document: {exc}") from exc

    return ensemble.freeze()


def save_model(ensemble: Ensemble, path: PathLike) -> None:
    """Write ``ensemble`` to ``path`` as JSON."""
    path = Path(path)
    with path.open("w", encoding="utf-8") as f:
        json.dump(ensemble_to_dict(ensemble), f, indent=1)
    logger.info(f"Saved model with {len(ensemble)} trees to {path}")


def load_model(path: PathLike) -> Ensemble:
    """Read an ensemble written by ``save_model``."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DataError(f"{path}: not a valid model file ({exc})") from exc
    except OSError as exc:
        raise DataError(f"{path}: cannot read model file ({exc})") from exc
    ensemble = ensemble_from_dict(data)
    logger.info(f"Loaded model with {len(ensemble)} trees from {path}")
    return ensemble


def render_tree(tree: DecisionTree, feature_names: Optional[Sequence[str]] = None) -> str:
    """
    Indented text view of a tree, left child first.

        ----x[0] <= 6 (gain=22.2222, n=3)
            ----leaf 0 (n=2)
            ----leaf 10 (n=1)
    """
    lines: List[str] = []
    stack = [(0, 0)]
    while stack:
        index, level = stack.pop()
        node = tree[index]
        indent = "    " * level
        if isinstance(node, InternalNode):
            name = feature_names[node.feature_index] if feature_names else f"x[{node.feature_index}]"
            lines.append(f"{indent}----{name} <= {node.threshold:.6g} (gain={node.gain:.6g}, n={node.n_samples})")
            stack.append((node.right, level + 1))
            stack.append((node.left, level + 1))
        else:
            lines.append(f"{indent}----leaf {node.value:.6g} (n={node.n_samples})")
    return "\n".join(lines)
