"""
Walkthrough of the lazy sequence engine.

Replays the iterator tutorial: ranges, steps, reversal, filters, consumers,
enumerate, sort/dedup, min/max, a custom generator and the laziness and
ownership guarantees.
"""

from time import sleep, perf_counter

from sequence import ConsumedTwice, UnboundedMaterialization
from sources import count_from, fahrenheit_table, from_collection, range_of
from utils import TUTORIAL_EXAMPLES


def expensive_transform(x):
    # Simulate a costly step so laziness is visible
    print(f"  computing f({x}) ...")
    sleep(0.05)
    return x * x


def demonstrate_tutorial():
    """Print every built-in walkthrough pipeline"""
    for name, (description, factory) in TUTORIAL_EXAMPLES.items():
        print(f"\n{description} [{name}]")
        print(f"  {factory()}")


def demonstrate_squares_table():
    print("\nBasic Range (exclusive on the right)")
    for i in range_of(1, 11):
        print(f"i = {i:3}; i*i = {i * i:3}")


def demonstrate_fahrenheit():
    print("\nCustom generator: Fahrenheit to Celsius")
    for fahr, celsius in fahrenheit_table(0.0, 5.0).take(5):
        print(f"{fahr:6.1f} F = {celsius:7.2f} C")


def demonstrate_laziness():
    print("\n--- Laziness (no work until pulled) ---")
    pipeline = (
        count_from(1)
        .map(expensive_transform)
        .filter(lambda v: v % 2 == 0)
        .skip(3)
        .take(5)
    )
    print("Constructed pipeline over an unbounded range. Nothing computed yet.")
    t0 = perf_counter()
    out = pipeline.collect()
    print(f"Result: {out} ({perf_counter() - t0:.2f}s)")


def demonstrate_guards():
    print("\n--- Guards ---")
    try:
        count_from(1).map(lambda x: x * 2).collect()
    except UnboundedMaterialization as e:
        print(f"UnboundedMaterialization: {e}")

    numbers = from_collection([3, 1, 2])
    print(f"sum = {numbers.sum()}")
    try:
        numbers.sum()
    except ConsumedTwice as e:
        print(f"ConsumedTwice: {e}")


if __name__ == "__main__":
    demonstrate_squares_table()
    demonstrate_tutorial()
    demonstrate_fahrenheit()
    demonstrate_laziness()
    demonstrate_guards()
