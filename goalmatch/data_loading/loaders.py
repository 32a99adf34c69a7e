"""
Data loading functions for goal trees.

Trees are read from JSON/YAML documents (one tree document per user, in the
same camelCase shape ``GoalTree.to_dict`` writes) or from a flat CSV with one
row per goal node. No matching happens here.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import yaml

from ..domain.schema import GoalNode, GoalTree
from ..errors import InvalidGoalTreeError

logger = logging.getLogger(__name__)

# CSV columns, snake_case in the file, mapped to node document keys
CSV_COLUMNS = {
    "owner_id": "ownerId",
    "id": "id",
    "domain": "domain",
    "name": "name",
    "weight": "weight",
    "progress": "progress",
    "parent_id": "parentId",
    "custom_details": "customDetails",
    "category": "category",
}
REQUIRED_CSV_COLUMNS = ["owner_id", "id", "domain", "name"]


def load_goal_trees(filepath: str) -> List[GoalTree]:
    """
    Load goal trees from a JSON or YAML file.

    The document is either a list of tree documents or a mapping with a
    ``trees`` key holding that list.

    Args:
        filepath: Path to a .json, .yaml or .yml file

    Returns:
        List of GoalTree, in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the document shape is wrong or a user appears twice
        InvalidGoalTreeError: If a tree violates its structural rules
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Goal tree file not found: {filepath}")

    logger.info(f"Loading goal trees from {filepath}")
    with open(path, "r") as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            document = yaml.safe_load(f)
        else:
            document = json.load(f)

    if isinstance(document, dict):
        document = document.get("trees")
    if not isinstance(document, list):
        raise ValueError(f"Expected a list of goal trees in {filepath}")

    trees = [GoalTree.from_dict(doc) for doc in document]
    _check_unique_users(trees, filepath)

    n_nodes = sum(len(t) for t in trees)
    logger.info(f"Loaded {len(trees)} goal trees with {n_nodes} nodes")
    return trees


def load_goal_nodes_csv(filepath: str, delimiter: str = ",") -> List[GoalTree]:
    """
    Load goal trees from a CSV with one row per goal node.

    Required columns: owner_id, id, domain, name. Optional columns:
    weight, progress, parent_id, custom_details, category. Rows are grouped
    into one tree per owner.

    Args:
        filepath: Path to the CSV file
        delimiter: Field delimiter (default: comma)

    Returns:
        List of GoalTree sorted by owner id

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is empty or misses required columns
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Goal node file not found: {filepath}")

    logger.info(f"Loading goal nodes from {filepath} (delimiter: {repr(delimiter)})")
    df = pd.read_csv(filepath, sep=delimiter, dtype={"owner_id": str, "id": str, "parent_id": str})

    if df.empty:
        raise ValueError(f"Goal node file is empty: {filepath}")

    missing = [c for c in REQUIRED_CSV_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns in {filepath}: {missing}")

    trees = []
    for owner_id, group in df.groupby("owner_id", sort=True):
        nodes = [GoalNode.from_dict(_row_to_document(row), owner_id=owner_id)
                 for row in group.to_dict(orient="records")]
        trees.append(GoalTree.from_nodes(owner_id, nodes))

    logger.info(f"Loaded {len(df)} goal nodes into {len(trees)} trees")
    return trees


def _row_to_document(row: Dict[str, Any]) -> Dict[str, Any]:
    document = {}
    for column, key in CSV_COLUMNS.items():
        value = row.get(column)
        # pandas reads empty cells as NaN
        if value is None or (isinstance(value, float) and pd.isna(value)):
            continue
        document[key] = value
    return document


def _check_unique_users(trees: List[GoalTree], source: str) -> None:
    seen = set()
    for tree in trees:
        if tree.user_id in seen:
            raise InvalidGoalTreeError(f"User {tree.user_id!r} appears more than once in {source}")
        seen.add(tree.user_id)


def save_goal_trees(trees: List[GoalTree], filepath: str) -> None:
    """Write trees as a JSON list of tree documents."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump([t.to_dict() for t in trees], f, indent=2)
    logger.info(f"Saved {len(trees)} goal trees to {filepath}")


def goal_trees_to_frame(trees: List[GoalTree], columns: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Flatten trees into a DataFrame with one row per node.

    Args:
        trees: Goal trees to flatten
        columns: Optional subset of CSV column names to keep

    Returns:
        DataFrame using the CSV column names, with a ``domain`` column of
        display strings
    """
    rows = []
    for tree in trees:
        for node in tree.node_list:
            rows.append({
                "owner_id": node.owner_id,
                "id": node.id,
                "domain": node.domain.value,
                "name": node.name,
                "weight": node.weight,
                "progress": node.progress,
                "parent_id": node.parent_id,
                "custom_details": node.custom_details,
                "category": node.category,
            })
    df = pd.DataFrame(rows, columns=list(CSV_COLUMNS))
    if columns is not None:
        df = df[columns]
    return df
