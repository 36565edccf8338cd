#!/usr/bin/env python
"""
StratScan Test Runner
Run this before committing to ensure the package imports and all tests pass.
Usage: python scripts/run_tests.py [-m unit|integration]
"""
import subprocess
import sys
import os


class Colors:
    GREEN = '\033[92m'
    RED = '\033[91m'
    YELLOW = '\033[93m'
    END = '\033[0m'


def run_command(cmd, cwd=None):
    """Run a command and return (success, stdout, stderr)"""
    result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
    return result.returncode == 0, result.stdout, result.stderr


def main():
    print("=" * 50)
    print("StratScan Pre-Commit Test Suite")
    print("=" * 50)

    root_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    marker = sys.argv[2] if len(sys.argv) > 2 and sys.argv[1] == "-m" else None
    all_passed = True

    print(f"\n{Colors.YELLOW}[1/2] Checking imports...{Colors.END}")
    success, stdout, stderr = run_command(
        [sys.executable, "-c", "import stratscan.cli; print('Imports OK')"],
        cwd=root_dir,
    )
    if success and "Imports OK" in stdout:
        print(f"{Colors.GREEN}✓ All imports successful{Colors.END}")
    else:
        print(f"{Colors.RED}✗ Import errors{Colors.END}")
        print(stderr)
        all_passed = False

    print(f"\n{Colors.YELLOW}[2/2] Running tests{' (' + marker + ')' if marker else ''}...{Colors.END}")
    cmd = [sys.executable, "-m", "pytest", "stratscan/tests", "-v", "--tb=short"]
    if marker:
        cmd += ["-m", marker]
    success, stdout, stderr = run_command(cmd, cwd=root_dir)
    print(stdout)
    if success:
        print(f"{Colors.GREEN}✓ All tests passed{Colors.END}")
    else:
        print(f"{Colors.RED}✗ Some tests failed{Colors.END}")
        print(stderr)
        all_passed = False

    print("\n" + "=" * 50)
    if all_passed:
        print(f"{Colors.GREEN}All checks passed{Colors.END}")
        return 0
    print(f"{Colors.RED}Checks failed, fix before committing{Colors.END}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
