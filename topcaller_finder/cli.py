"""
Command-line interface for the top-caller finder.

Indexes a Java repository and reports the entry points (top callers) that can
reach a method or a MyBatis statement.
"""

import sys
import json
import logging
import argparse
from pathlib import Path
from typing import Dict, Any, List, Optional

from .errors import TopCallerError
from .models import TopCallerSearchResult, TopCallerWithStatement


def _save_json(results: Dict[Any, Any], output_path: Optional[str]):
    if not output_path:
        return
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(results, f, indent=2, ensure_ascii=False)
    print(f"Results saved to: {output_path}")


def _build_service(repo_path: str, include_tests: bool = False, max_depth: Optional[int] = None):
    # Import here to avoid loading the parser when only using visualize
    from .analysis_service import TopCallerAnalysisService
    from .top_caller_finder import MAX_DEPTH

    print(f"Indexing repository: {repo_path}")
    service = TopCallerAnalysisService(
        repo_path,
        include_tests=include_tests,
        max_depth=max_depth if max_depth is not None else MAX_DEPTH,
    )
    service.build_index()
    return service


def analyze_repository(repo_path: str, output_path: str = None) -> Dict[Any, Any]:
    """
    Index a repository and report what was found.

    Args:
        repo_path: Path to the repository to analyze
        output_path: Optional path to save the results (JSON format)

    Returns:
        Dictionary containing the index summary and the indexed methods
    """
    service = _build_service(repo_path)
    summary = service.summary()
    snapshot = service.index.snapshot

    print(f"Found {summary['total_types']} types and {summary['total_methods']} methods "
          f"in {summary['total_files']} files ({summary['production_files']} production)")
    print(f"Call sites: {summary['total_invocations']}, "
          f"lambdas and method references: {summary['total_functional_expressions']}")

    results = {
        "summary": summary,
        "methods": sorted(
            (m.model_dump() for m in snapshot.methods()),
            key=lambda m: (m["qualified_name"], m["parameter_types"])
        ),
    }
    _save_json(results, output_path)
    return results


def find_top_callers(
    repo_path: str,
    method_spec: str,
    output_path: str = None,
    max_depth: Optional[int] = None,
    include_tests: bool = False,
) -> TopCallerSearchResult:
    """
    Find the top callers of one method and print them.

    Args:
        repo_path: Path to the repository to analyze
        method_spec: pkg.Type#method, pkg.Type.method, optionally with (ParamTypes)
        output_path: Optional path to save the results (JSON format)
        max_depth: Override of the traversal depth limit
        include_tests: Also follow callers in test sources
    """
    service = _build_service(repo_path, include_tests, max_depth)
    result = service.find_top_callers(method_spec)

    print(f"\nTop callers of {result.query.qualified_name}({', '.join(result.query.parameter_types)}):")
    if not result.top_callers:
        print("  No top callers found")
    for caller in sorted(result.top_callers, key=lambda m: (m.qualified_name, m.parameter_types)):
        location = f"{caller.location.file_path}:{caller.location.start_line}" if caller.location else "unknown"
        print(f"  - {caller.qualified_name}({', '.join(caller.parameter_types)})  [{location}]")

    print(f"\nVisited {result.visited_count} methods")
    if result.truncated:
        print(f"Warning: search stopped at depth {service.finder.max_depth} on "
              f"{len(result.truncated_methods)} path(s); results may be incomplete")

    _save_json(result.model_dump(), output_path)
    return result


def find_statement_top_callers(repo_path: str, statement_id: str, output_path: str = None) -> List[TopCallerWithStatement]:
    """
    Find the top callers of the mapper method behind a MyBatis statement.

    Args:
        repo_path: Path to the repository to analyze
        statement_id: namespace.id, e.g. com.acme.UserMapper.selectById
        output_path: Optional path to save the results (JSON format)
    """
    service = _build_service(repo_path)
    records = service.find_top_callers_for_statement(statement_id)

    print(f"\nTop callers of statement {statement_id}:")
    if not records:
        print("  No top callers found")
    for record in records:
        print(f"  - {record.method.qualified_name}({', '.join(record.method.parameter_types)})")

    _save_json({
        "statement_id": statement_id,
        "top_callers": [record.model_dump() for record in records],
    }, output_path)
    return records


def visualize_results(results: Dict[Any, Any], output_file: str = None) -> str:
    """
    Render a saved top-caller result as a DOT graph.

    Args:
        results: Results saved by the top-callers command
        output_file: Optional file to save visualization (DOT format)
    """
    query = results["query"]
    query_id = f'{query["qualified_name"]}({", ".join(query["parameter_types"])})'

    dot_content = "digraph TopCallers {\n"
    dot_content += "  rankdir=LR;\n"
    dot_content += "  node [shape=box];\n\n"
    dot_content += f'  "{query_id}" [label="{query["name"]}", style=filled, fillcolor=lightgrey];\n'

    for caller in results.get("top_callers", []):
        caller_id = f'{caller["qualified_name"]}({", ".join(caller["parameter_types"])})'
        # Simplify the node label to Type.method
        label = ".".join(caller["qualified_name"].split(".")[-2:])
        dot_content += f'  "{caller_id}" [label="{label}"];\n'
        dot_content += f'  "{caller_id}" -> "{query_id}";\n'

    dot_content += "}\n"

    if output_file:
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(dot_content)
        print(f"Visualization saved to: {output_file}")

    return dot_content


def main(argv: Optional[List[str]] = None):
    """Main entry point for the command-line interface."""
    parser = argparse.ArgumentParser(
        description="Find the top callers (entry points) of Java methods and MyBatis statements",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s analyze /path/to/repo                                       # Index repository
  %(prog)s top-callers /path/to/repo com.acme.UserService#save         # Top callers of a method
  %(prog)s top-callers /path/to/repo 'com.acme.UserService.save(User)' -o results.json
  %(prog)s statement /path/to/repo com.acme.UserMapper.selectById      # Top callers of a statement
  %(prog)s visualize results.json -o graph.dot                         # Visualize results as DOT
        """
    )
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Log progress (-v for info, -vv for debug)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    analyze_parser = subparsers.add_parser('analyze', help='Index a repository and print a summary')
    analyze_parser.add_argument('repo_path', help='Path to the repository to analyze')
    analyze_parser.add_argument('-o', '--output', help='Output file path for results (JSON format)')

    top_callers_parser = subparsers.add_parser('top-callers', help='Find the top callers of a method')
    top_callers_parser.add_argument('repo_path', help='Path to the repository to analyze')
    top_callers_parser.add_argument('method', help='Method as pkg.Type#method or pkg.Type.method, '
                                                   'optionally with a parameter list')
    top_callers_parser.add_argument('--max-depth', type=int, default=None,
                                    help='Maximum call depth to follow (default: 50)')
    top_callers_parser.add_argument('--include-tests', action='store_true',
                                    help='Also follow callers in test sources')
    top_callers_parser.add_argument('-o', '--output', help='Output file path for results (JSON format)')

    statement_parser = subparsers.add_parser('statement', help='Find the top callers of a MyBatis statement')
    statement_parser.add_argument('repo_path', help='Path to the repository to analyze')
    statement_parser.add_argument('statement_id', help='Statement id as namespace.id')
    statement_parser.add_argument('-o', '--output', help='Output file path for results (JSON format)')

    visualize_parser = subparsers.add_parser('visualize', help='Visualize saved top-caller results')
    visualize_parser.add_argument('input_file', help='Input file with top-caller results (JSON format)')
    visualize_parser.add_argument('-o', '--output', help='Output file for visualization (DOT format)',
                                  default='top_callers.dot')

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == 'analyze':
            analyze_repository(args.repo_path, args.output)
            print("Analysis completed successfully!")

        elif args.command == 'top-callers':
            find_top_callers(args.repo_path, args.method, args.output, args.max_depth, args.include_tests)

        elif args.command == 'statement':
            find_statement_top_callers(args.repo_path, args.statement_id, args.output)

        elif args.command == 'visualize':
            with open(args.input_file, 'r', encoding='utf-8') as f:
                results = json.load(f)
            visualize_results(results, args.output)
            print("Visualization completed successfully!")

    except (TopCallerError, ValueError, OSError) as e:
        print(f"Error during {args.command}: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
