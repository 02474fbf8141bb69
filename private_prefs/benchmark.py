"""
Private Preferences Benchmark CLI.

Usage:
    private-prefs-benchmark

Or run directly:
    python -m private_prefs.benchmark

Runs against a throwaway directory unless PRIVATE_PREFS_DIR and
PRIVATE_PREFS_KEYS_DIR are set in the environment or a .env file.
"""

from __future__ import annotations

import os
import sys
import tempfile
import time
from pathlib import Path
from typing import List

from pydantic import BaseModel

from private_prefs.config import ENV_KEYS_DIR, ENV_PREFS_DIR, PreferencesConfig
from private_prefs.crypto import AeadCodec, decode_text, encode_text
from private_prefs.errors import AuthenticationError, PreferencesError
from private_prefs.registry import StoreRegistry
from private_prefs.store import StoreLayout


class _Profile(BaseModel):
    name: str
    age: int
    tags: List[str]


def _banner(title: str) -> None:
    print("+" + "-" * 68 + "+")
    print(f"|  {title}" + " " * max(0, 66 - len(title)) + "|")
    print("+" + "-" * 68 + "+")


def _rate(count: int, duration: float) -> str:
    return f"{duration * 1000:.3f}ms | Rate: {count / duration:.2f} ops/sec"


def run_benchmark(config: PreferencesConfig) -> None:
    """Run the encrypted preferences benchmark."""
    try:
        user_input = input("Enter number of operations per type (default: 500): ").strip()
        test_quantity = int(user_input) if user_input else 500
    except ValueError:
        test_quantity = 500
    test_quantity = max(1, test_quantity)
    print(f"Testing with {test_quantity} operations per type\n")

    registry = StoreRegistry.from_config(config)
    prefs = registry.get_or_create("benchmark")
    prefs.clear()

    print("=" * 70)
    print("                    BENCHMARK START")
    print("=" * 70 + "\n")

    # ========================================================================
    # Demo 1: Typed writes and reads
    # ========================================================================
    _banner("Demo 1: Typed Put/Get")

    cases = [
        ("text", prefs.put_text, prefs.get_text, lambda i: f"value-{i}"),
        ("integer", prefs.put_integer, prefs.get_integer, lambda i: i),
        ("long", prefs.put_long, prefs.get_long, lambda i: i * 2**40),
        ("float", prefs.put_float, prefs.get_float, lambda i: i / 7),
        ("boolean", prefs.put_boolean, prefs.get_boolean, lambda i: i % 2 == 0),
    ]
    timings = {}
    for kind, put, get, make in cases:
        start = time.perf_counter()
        for i in range(test_quantity):
            put(f"{kind}-{i}", make(i))
        put_duration = time.perf_counter() - start

        start = time.perf_counter()
        for i in range(test_quantity):
            if get(f"{kind}-{i}") != make(i):
                print(f"[ERROR] {kind} round-trip mismatch at {i}")
                sys.exit(1)
        get_duration = time.perf_counter() - start

        timings[kind] = (put_duration, get_duration)
        print(f"[PERF] {kind:<8} put: {_rate(test_quantity, put_duration)}")
        print(f"[PERF] {kind:<8} get: {_rate(test_quantity, get_duration)}")

    profile = _Profile(name="Ada", age=36, tags=["admin", "ops"])
    start = time.perf_counter()
    for i in range(test_quantity):
        prefs.put_object(f"object-{i}", profile, _Profile)
    object_duration = time.perf_counter() - start
    print(f"[PERF] object   put: {_rate(test_quantity, object_duration)}\n")

    # ========================================================================
    # Demo 2: Nonce uniqueness
    # ========================================================================
    _banner("Demo 2: Nonce Uniqueness")

    handle = registry.custodian.get_or_create_key(prefs.key_alias)
    nonces = {AeadCodec.encrypt(handle, b"x").nonce for _ in range(test_quantity * 10)}
    print(f"[OK] {len(nonces)}/{test_quantity * 10} distinct nonces\n")

    # ========================================================================
    # Demo 3: Tamper detection
    # ========================================================================
    _banner("Demo 3: Tamper Detection")

    prefs.put_text("tamper-target", "do not touch")
    if prefs.layout is StoreLayout.COMBINED:
        entry = "tamper-target_sealed"
    else:
        entry = "tamper-target_data"
    blob = bytearray(decode_text(prefs.backend.get(entry)))
    blob[-1] ^= 0x01
    prefs.backend.put(entry, encode_text(bytes(blob)))
    try:
        prefs.get_text("tamper-target")
        print("[ERROR] Tampered value was accepted\n")
    except AuthenticationError:
        print("[OK] Tampered value rejected\n")

    # ========================================================================
    # Demo 4: Registry eviction
    # ========================================================================
    _banner("Demo 4: Registry Eviction")

    start = time.perf_counter()
    registry.evict("benchmark")
    reopened = registry.get_or_create("benchmark")
    value = reopened.get_text("text-0")
    reopen_duration = time.perf_counter() - start
    status = "OK" if value == "value-0" and reopened is not prefs else "ERROR"
    print(f"[{status}] Evicted store reopened with persisted data")
    print(f"[PERF] Reopen + first read: {reopen_duration * 1000:.3f}ms\n")

    # ========================================================================
    # Summary
    # ========================================================================
    print("=" * 70)
    print("                    BENCHMARK SUMMARY")
    print("=" * 70 + "\n")

    print(f"Stored keys: {len(reopened.keys())}")
    for kind, (put_duration, get_duration) in timings.items():
        print(
            f"  - {kind:<8} put {test_quantity / put_duration:10.2f} ops/sec"
            f" | get {test_quantity / get_duration:10.2f} ops/sec"
        )

    print("\nTest Configuration:")
    print(f"  - Preferences dir: {config.prefs_dir}")
    print(f"  - Layout: {config.layout}")
    print("  - Crypto: AES-256-GCM, 96-bit random nonce, 128-bit tag")

    reopened.clear()

    print("\n" + "=" * 70)
    print("                    BENCHMARK COMPLETE")
    print("=" * 70 + "\n")


def main() -> None:
    """CLI entry point for private-prefs-benchmark command."""
    print("=== Private Preferences Benchmark ===\n")

    try:
        config = PreferencesConfig.from_env()
        if os.environ.get(ENV_PREFS_DIR) and os.environ.get(ENV_KEYS_DIR):
            run_benchmark(config)
            return

        with tempfile.TemporaryDirectory(prefix="private-prefs-") as tmp:
            print(f"[STARTUP] Using temporary directory {tmp}")
            config.prefs_dir = Path(tmp) / "prefs"
            config.keys_dir = Path(tmp) / "keys"
            run_benchmark(config)
    except PreferencesError as e:
        print(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
