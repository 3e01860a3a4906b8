#!/usr/bin/env python3
"""
Minimal exposer serving a calculator and a few functions over HTTP.

Usage:
    1) Install the package: pip install -e .
    2) Start server: python examples/calculator_server.py
    3) Run client: python examples/calculator_client.py
"""

import asyncio
import logging
import os
import sys

# Add parent directory to path to import pymirror
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymirror import ExposureCatalog, MirrorOptions
from pymirror.server import run_forever

HOST = os.environ.get('MIRROR_HOST', 'localhost')
PORT = int(os.environ.get('MIRROR_PORT', '8080'))

catalog = ExposureCatalog()


@catalog.exposed
class Calculator:
    """Arithmetic with a configurable rounding precision."""

    precision: int = 2

    def __init__(self, precision: int = 2):
        self.precision = precision

    def add(self, a: float, b: float) -> float:
        return round(a + b, self.precision)

    def divide(self, a: float, b: float) -> float:
        if b == 0:
            raise ZeroDivisionError("Cannot divide by zero")
        return round(a / b, self.precision)

    async def slow_square(self, x: float) -> float:
        await asyncio.sleep(0.1)
        return round(x * x, self.precision)


@catalog.exposed
def greet(name: str, *, punctuation: str = "!") -> str:
    return f"Hello, {name}{punctuation}"


@catalog.exposed
def word_count(text: str) -> dict:
    counts = {}
    for word in text.split():
        counts[word] = counts.get(word, 0) + 1
    return counts


def main():
    logging.basicConfig(level=logging.INFO)
    print(f"Serving {catalog.total_pages} callables on http://{HOST}:{PORT}/mirror")
    try:
        asyncio.run(run_forever(catalog, HOST, PORT, MirrorOptions(debug=True)))
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == '__main__':
    main()
