"""
Benchmark driver: renders a sweep of exponents and times each render.

Each run uses the default configuration with the imaginary part of the
exponent stepped by `step`, so successive images differ slightly.

Example:
    multibrot-bench -c 5 -s 0.0 --step 0.001
"""

import argparse
import logging
import sys
import time

from .app import run
from .config import RenderConfig
from .errors import MultibrotError


def run_benchmark(count=3, start=0.0, step=0.001, base_config=None, output_dir=None):
    """
    Render `count` images with power_i = start, start + step, ...

    Args:
        count: Number of renders
        start: Imaginary part of the exponent for the first render
        step: Increment of the imaginary part between renders
        base_config: RenderConfig to vary (default: settings.json defaults)
        output_dir: Where to write the images

    Returns:
        List of (power_i, seconds) tuples, one per render
    """
    base_config = base_config or RenderConfig.from_settings()
    timings = []
    power_i = start
    for _ in range(count):
        config = base_config.with_changes(power_i=power_i)
        t0 = time.perf_counter()
        run(config, output_dir)
        elapsed = time.perf_counter() - t0
        print(f"Time: {elapsed:.2f} seconds")
        timings.append((power_i, elapsed))
        power_i += step
    return timings


def main(argv=None):
    """Entry point for the multibrot-bench console script."""
    parser = argparse.ArgumentParser(
        prog='multibrot-bench',
        description='Time a sweep of Multibrot renders',
    )
    parser.add_argument('-c', '--count', type=int, default=3, help='Number of renders (default 3)')
    parser.add_argument('-s', '--start', type=float, default=0.0, help='First exponent imaginary part (default 0.0)')
    parser.add_argument('--step', type=float, default=0.001, help='Exponent imaginary step (default 0.001)')
    parser.add_argument('-o', '--output-dir', help='Output directory')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    try:
        timings = run_benchmark(args.count, args.start, args.step, output_dir=args.output_dir)
    except MultibrotError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if timings:
        total = sum(seconds for _, seconds in timings)
        print(f"Average: {total / len(timings):.2f} seconds over {len(timings)} renders")
    return 0
