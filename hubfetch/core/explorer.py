"""
Tree-structure scan built on top of the DirectoryWalker.
"""

import posixpath
from typing import Dict, List

from .patterns import format_size, get_extension
from .walker import DirectoryWalker
from ..infrastructure.logger import logger
from ..models.config import ExploreOptions
from ..models.download import WalkBudget
from ..models.repository import EntryType, RepositoryId, TreeEntry
from ..models.results import TreeNode, TreeStats, TreeStructure


def render_tree(root: TreeNode) -> str:
    """ASCII rendering with ``├──``/``└──`` connectors and file sizes."""

    lines = [f"{root.name}/"]

    def visit(node: TreeNode, prefix: str) -> None:
        children = node.sorted_children()
        for index, child in enumerate(children):
            last = index == len(children) - 1
            connector = "└── " if last else "├── "
            if child.is_directory:
                label = f"{child.name}/"
                if child.truncated:
                    label += " [truncated]"
            else:
                label = child.name
                if child.size is not None:
                    label += f" ({format_size(child.size)})"
            lines.append(prefix + connector + label)
            if child.is_directory:
                visit(child, prefix + ("    " if last else "│   "))

    visit(root, "")
    return "\n".join(lines)


class TreeExplorer:
    """Builds a nested TreeNode structure from one budget-bounded walk."""

    def __init__(self, walker: DirectoryWalker):
        self.walker = walker

    async def explore(self, repo_id: RepositoryId, options: ExploreOptions) -> TreeStructure:
        root_name = posixpath.basename(options.path) or repo_id.name
        root = TreeNode(name=root_name, path=options.path, type=EntryType.DIRECTORY)
        nodes: Dict[str, TreeNode] = {options.path: root}
        stats = TreeStats()
        budget = WalkBudget(max_depth=options.max_depth, max_files=options.max_files)

        def on_directory(path: str, depth: int, entries: List[TreeEntry]) -> None:
            parent = nodes.get(path, root)
            for entry in entries:
                if entry.is_directory and entry.path not in nodes:
                    node = TreeNode(name=entry.name, path=entry.path, type=EntryType.DIRECTORY)
                    parent.children.append(node)
                    nodes[entry.path] = node
                    stats.total_directories += 1
                    stats.max_depth = max(stats.max_depth, depth + 1)

        async for entry in self.walker.walk(
            repo_id, options.revision, options.path, budget, on_directory=on_directory
        ):
            parent_path = posixpath.dirname(entry.path)
            parent = nodes.get(parent_path, root)
            parent.children.append(
                TreeNode(name=entry.name, path=entry.path, type=EntryType.FILE, size=entry.size)
            )
            stats.total_files += 1
            stats.total_size += entry.size or 0
            extension = get_extension(entry.path)
            stats.file_types[extension] = stats.file_types.get(extension, 0) + 1

        for path in budget.truncated_paths:
            node = nodes.get(path) or (root if path == "/" else None)
            if node is not None:
                node.truncated = True

        structure = TreeStructure(
            repo_id=str(repo_id),
            revision=options.revision,
            root=root,
            stats=stats,
            truncated_paths=sorted(budget.truncated_paths)
        )
        if options.tree_view:
            structure.tree_view = render_tree(root)

        logger.debug(
            f"Explored {repo_id}: {stats.total_files} files, "
            f"{stats.total_directories} directories"
        )
        return structure


__all__ = ["TreeExplorer", "render_tree"]
