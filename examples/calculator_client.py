#!/usr/bin/env python3
"""
Caller that discovers the calculator exposer and calls it through proxies.

Demonstrates:
- Discovery: walking the remote catalog page by page
- Proxy generation: rendering and loading proxy source
- Forwarding: instance methods, the remote constructor, remote exceptions

Usage (separate terminal from server):
    python examples/calculator_client.py
"""

import asyncio
import os
import sys

# Add parent directory to path to import pymirror
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymirror import CallForwarder, InvocationError, discover, generate, load_proxies

MIRROR_URL = os.environ.get('MIRROR_URL', 'http://localhost:8080/mirror')


async def main():
    model = await discover(MIRROR_URL)
    print(f"Discovered {len(model.classes)} classes and {len(model.functions)} functions")

    source = generate(model, "calculator_server")
    if os.environ.get('SHOW_SOURCE'):
        print(source)

    async with CallForwarder(MIRROR_URL) as forwarder:
        proxies = load_proxies(source, forwarder)

        calc = await proxies.Calculator.construct(precision=3)
        print(f"add(1.23456, 2) = {await calc.add(1.23456, 2)}")
        print(f"slow_square(1.5) = {await calc.slow_square(1.5)}")
        print(await proxies.greet("Ada", punctuation="?"))
        print(await proxies.word_count("the cat and the hat"))

        result = await forwarder.call("Calculator::divide", [1, 3], calc)
        print(f"divide(1, 3) = {result.value} at {result.time}, "
              f"{result.execution_time * 1000:.3f} ms, {result.memory_usage} bytes")

        try:
            await calc.divide(1, 0)
        except InvocationError as e:
            print(f"Remote error: {type(e.original).__name__}: {e.original}")


if __name__ == '__main__':
    asyncio.run(main())
