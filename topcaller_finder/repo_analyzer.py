"""
Repository Analyzer

Scans a repository for the Java sources to index.
"""

import datetime
import fnmatch
import logging
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class RepoAnalyzer:
    """
    Analyzes repository structure and extracts file information.
    """

    def __init__(
        self,
        include_patterns: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None
    ):
        """
        Initialize the repository analyzer.

        Args:
            include_patterns: Patterns to include (default: ['*.java'])
            exclude_patterns: Patterns to exclude
        """
        self.include_patterns = include_patterns or ['*.java']
        self.exclude_patterns = exclude_patterns or [
            'node_modules', '__pycache__', '.git', '.svn', '.hg',
            'target', 'build', 'out', '.gradle', '.vscode', '.idea'
        ]

    def analyze_repository_structure(self, repo_path: str) -> Dict:
        """
        Analyze the repository structure and return a file tree representation.

        Args:
            repo_path: Path to the repository

        Returns:
            Dict containing the file tree and summary information
        """
        repo_path = Path(repo_path)
        if not repo_path.is_dir():
            raise FileNotFoundError(f"Repository path does not exist: {repo_path}")

        file_tree = self._scan_directory(repo_path)

        summary = {
            "total_files": self._count_files(file_tree),
            "root_path": str(repo_path),
            "analysis_timestamp": datetime.datetime.now().isoformat()
        }

        return {
            "file_tree": file_tree,
            "summary": summary
        }

    def collect_files(self, tree: Dict) -> List[str]:
        """
        Flatten a file tree into a sorted list of file paths.

        Args:
            tree: Tree structure returned by analyze_repository_structure

        Returns:
            Paths of all files in the tree
        """
        if tree["type"] == "file":
            return [tree["path"]]

        files = []
        for child in tree.get("children", []):
            files.extend(self.collect_files(child))
        return sorted(files)

    def _matches_pattern(self, name: str, patterns: List[str]) -> bool:
        return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)

    def _should_exclude(self, path: Path) -> bool:
        """
        Determine if a path should be excluded based on exclude patterns.

        Args:
            path: Path to check

        Returns:
            True if the path should be excluded, False otherwise
        """
        return self._matches_pattern(path.name, self.exclude_patterns)

    def _scan_directory(self, directory: Path) -> Dict:
        """
        Recursively scan a directory and return its structure.

        Args:
            directory: Directory to scan

        Returns:
            Dict representing the directory structure
        """
        result = {
            "type": "directory",
            "name": directory.name,
            "path": str(directory),
            "children": []
        }

        try:
            for item in sorted(directory.iterdir()):
                if self._should_exclude(item):
                    continue

                if item.is_file():
                    if not self._matches_pattern(item.name, self.include_patterns):
                        continue

                    file_stat = item.stat()
                    result["children"].append({
                        "type": "file",
                        "name": item.name,
                        "path": str(item),
                        "size": file_stat.st_size,
                        "modified": datetime.datetime.fromtimestamp(file_stat.st_mtime).isoformat()
                    })

                elif item.is_dir():
                    result["children"].append(self._scan_directory(item))

        except PermissionError:
            logger.warning(f"Skipping unreadable directory {directory}")

        return result

    def _count_files(self, tree: Dict) -> int:
        """Count the files in a tree structure."""
        if tree["type"] == "file":
            return 1
        return sum(self._count_files(child) for child in tree.get("children", []))
