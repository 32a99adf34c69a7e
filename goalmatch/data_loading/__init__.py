"""Data loading module for goal tree documents and CSV exports."""

from .loaders import load_goal_trees, load_goal_nodes_csv, save_goal_trees, goal_trees_to_frame

__all__ = ["load_goal_trees", "load_goal_nodes_csv", "save_goal_trees", "goal_trees_to_frame"]
