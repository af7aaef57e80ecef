#!/usr/bin/env python3
"""
Main entry point for solflame
"""

import sys
import argparse
from pathlib import Path
from typing import List, Optional

from web3.exceptions import Web3Exception

from . import __version__
from .call_tree import CallTree, TraceBuildError, TraceError, build_call_tree
from .colors import error, frame_title, gas_value, info, success, warning
from .config import DEFAULT_CONFIG_FILE, FlameConfig
from .flamegraph import PALETTES, Flamegraph, FlamegraphOptions
from .folding import flatten, fold_call_trace
from .json_serializer import TreeSerializer
from .source_mapper import load_contract_names, load_contracts_mapping
from .step import Step, load_steps
from .transaction_tracer import TransactionTracer


def _log(args, message: str):
    """Diagnostics go to stderr and are silenced when JSON is requested."""
    if not getattr(args, 'json', False):
        print(message, file=sys.stderr)


def load_config(args) -> FlameConfig:
    """Config file values, overridden by the flags given on the command line."""
    config = FlameConfig.from_config_file(args.config)
    config.update({
        'rpc_url': getattr(args, 'rpc', None),
        'title': args.title,
        'colors': args.colors,
        'flame_chart': args.flame_chart,
        'relabel_gas': False if args.no_relabel else None,
        'opcode_frames': True if getattr(args, 'opcodes', False) else None,
        'contracts_file': getattr(args, 'contracts', None),
        'lookup_signatures': True if getattr(args, 'lookup_signatures', False) else None,
    })
    return config


def print_tree(tree: CallTree):
    for index in tree.walk():
        frame = tree[index]
        indent = "  " * tree.depth_of(index)
        status = "" if frame.closed else f" {warning('(unclosed)')}"
        print(f"{indent}{frame_title(frame.title, frame.kind.value)} "
              f"(gas: {gas_value(frame.total_gas)}){status}")


def build_tree(args, steps: List[Step], config: FlameConfig) -> CallTree:
    """Build the call tree, falling back to the partial tree when construction stops early."""
    try:
        tree = build_call_tree(steps, opcode_frames=config.opcode_frames)
    except TraceBuildError as e:
        _log(args, warning(f"Warning: call tree is incomplete, {e}"))
        tree = e.partial_tree
    _log(args, f"Built call tree with {info(str(len(tree)))} frames from {len(steps)} steps")
    return tree


def emit_tree(args, tree: CallTree):
    if args.json:
        serializer = TreeSerializer()
        print(serializer.to_json(serializer.serialize_tree(tree)))
    elif args.print_tree:
        print_tree(tree)


def render(args, lines: List[str], label: str, config: FlameConfig) -> int:
    """Write the folded lines and the SVG for one flame graph."""
    if args.folded:
        Path(args.folded).write_text("\n".join(lines) + "\n" if lines else "")
        _log(args, f"Folded stacks written to {info(args.folded)}")

    options = FlamegraphOptions(
        title=config.title or f"Gas flame graph: {label}",
        colors=config.colors,
        flame_chart=config.flame_chart,
    )
    graph = Flamegraph(lines, options)
    graph.quiet_mode = args.json
    path = graph.generate(config.output_path(label, args.output), relabel_gas=config.relabel_gas)
    _log(args, success(f"Flame graph written to {path}"))
    return 0


def steps_command(args):
    """Execute the steps command."""
    config = load_config(args)
    steps = load_steps(args.file)
    tree = build_tree(args, steps, config)
    emit_tree(args, tree)
    return render(args, flatten(tree), Path(args.file).stem, config)


def trace_command(args):
    """Execute the trace command."""
    config = load_config(args)
    if not config.contracts_file:
        _log(args, error("Error: a contracts mapping file is required (--contracts or config)"))
        return 1

    contracts = load_contracts_mapping(config.contracts_file)
    _log(args, f"Loaded source maps for {info(str(len(contracts)))} contracts")

    tracer = TransactionTracer(config.rpc_url, quiet_mode=args.json)
    _log(args, f"Loading transaction {args.tx_hash}...")
    steps = tracer.trace_steps(args.tx_hash, contracts)

    if args.save_steps:
        serializer = TreeSerializer()
        Path(args.save_steps).write_text(serializer.to_json(serializer.serialize_steps(steps)))
        _log(args, f"Steps written to {info(args.save_steps)}")

    tree = build_tree(args, steps, config)
    emit_tree(args, tree)
    return render(args, flatten(tree), args.tx_hash[:10], config)


def calls_command(args):
    """Execute the calls command."""
    config = load_config(args)
    # a call trace has no timeline, so it is drawn as a flame graph unless asked otherwise
    if args.flame_chart is None:
        config.flame_chart = False

    contract_names = load_contract_names(config.contracts_file) if config.contracts_file else {}
    tracer = TransactionTracer(config.rpc_url, quiet_mode=args.json)
    for abi_path in args.abi or []:
        tracer.load_abi(abi_path)

    _log(args, f"Loading call trace of {args.tx_hash}...")
    call_trace = tracer.fetch_call_trace(args.tx_hash)
    nodes = tracer.decode_call_trace(call_trace, contract_names, config.lookup_signatures)

    if args.json:
        serializer = TreeSerializer()
        print(serializer.to_json(serializer.serialize_call_trace(nodes)))
    elif args.print_tree:
        for node in nodes:
            depth = 0
            parent = node.parent
            while parent is not None:
                depth += 1
                parent = nodes[parent].parent
            print(f"{'  ' * depth}{frame_title(node.display, 'external')} (gas: {gas_value(node.gas_used)})")

    return render(args, fold_call_trace(nodes), args.tx_hash[:10], config)


def render_command(args):
    """Execute the render command."""
    config = load_config(args)
    path = Path(args.file)
    if not path.exists():
        raise FileNotFoundError(f"Folded stacks file not found: {path}")
    lines = [line for line in path.read_text().splitlines() if line.strip()]
    return render(args, lines, path.stem, config)


def add_output_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('--output', '-o', help='SVG output path (default: flamegraph-<label>.svg)')
    parser.add_argument('--title', help='Title drawn at the top of the graph')
    parser.add_argument('--colors', choices=PALETTES, help='Color palette (default: hot)')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--flame-chart', dest='flame_chart', action='store_true', default=None,
                      help='Keep execution order, time runs left to right')
    mode.add_argument('--flame', dest='flame_chart', action='store_false', default=None,
                      help='Merge identical stacks and sort them alphabetically')
    parser.add_argument('--no-relabel', action='store_true', help='Keep "samples" as the unit in the SVG')
    parser.add_argument('--folded', help='Also write the folded stack lines to this file')
    parser.add_argument('--config', default=DEFAULT_CONFIG_FILE,
                        help=f'Configuration file (default: {DEFAULT_CONFIG_FILE})')


def add_tree_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('--json', action='store_true', help='Print the call tree as JSON on stdout')
    parser.add_argument('--print-tree', action='store_true', help='Print the call tree')
    parser.add_argument('--opcodes', action='store_true', help='Add a frame for every executed opcode')


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        prog='solflame',
        description='Gas flame graphs for Solidity transactions',
    )
    parser.add_argument('--version', '-v', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Commands')
    subparsers.required = True

    steps_parser = subparsers.add_parser('steps', help='Flame graph of a JSON step file')
    steps_parser.add_argument('file', help='JSON file with the executed steps')
    add_output_arguments(steps_parser)
    add_tree_arguments(steps_parser)

    trace_parser = subparsers.add_parser('trace', help='Flame graph of a mined transaction, per source function')
    trace_parser.add_argument('tx_hash', help='Transaction hash to trace')
    trace_parser.add_argument('--contracts', '-c', help='JSON file mapping contract addresses to compiler artifacts')
    trace_parser.add_argument('--rpc', '-r', help='RPC URL (default: http://localhost:8545)')
    trace_parser.add_argument('--save-steps', help='Also write the decoded steps to this JSON file')
    add_output_arguments(trace_parser)
    add_tree_arguments(trace_parser)

    calls_parser = subparsers.add_parser('calls', help='Flame graph of a transaction, per external call')
    calls_parser.add_argument('tx_hash', help='Transaction hash to trace')
    calls_parser.add_argument('--contracts', '-c', help='JSON file mapping contract addresses to names')
    calls_parser.add_argument('--abi', action='append', help='ABI file used to name called functions (repeatable)')
    calls_parser.add_argument('--lookup-signatures', action='store_true',
                              help='Look up unknown selectors on 4byte.directory')
    calls_parser.add_argument('--rpc', '-r', help='RPC URL (default: http://localhost:8545)')
    calls_parser.add_argument('--json', action='store_true', help='Print the decoded call trace as JSON on stdout')
    calls_parser.add_argument('--print-tree', action='store_true', help='Print the call trace')
    add_output_arguments(calls_parser)

    render_parser = subparsers.add_parser('render', help='Flame graph of a folded stacks file')
    render_parser.add_argument('file', help='Text file with one "frame;frame;frame weight" line per stack')
    add_output_arguments(render_parser)
    render_parser.set_defaults(json=False)

    args = parser.parse_args(argv)

    commands = {
        'steps': steps_command,
        'trace': trace_command,
        'calls': calls_command,
        'render': render_command,
    }
    try:
        return commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1
    except (OSError, ValueError, TraceError, Web3Exception) as e:
        # source map and step format errors are ValueErrors, ConnectionError an OSError
        print(error(f"Error: {e}"), file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
