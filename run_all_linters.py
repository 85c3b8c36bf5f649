#!/usr/bin/env python3
"""執行格式化、靜態檢查與單元測試，最後輸出總結報告。

用法：
    python run_all_linters.py          # 只檢查
    python run_all_linters.py --fix    # 先以 black / isort 直接改寫檔案
"""

import argparse
from pathlib import Path
import subprocess
import sys

ROOT = Path(__file__).parent
SOURCES = ["app", "core", "infrastructure", "functions", "main.py"]


def build_steps(fix: bool) -> list[tuple[str, list[str]]]:
    black = ["black", "."] if fix else ["black", ".", "--check"]
    isort = ["isort", "."] if fix else ["isort", ".", "--check-only"]
    return [
        ("Black 格式化", black),
        ("isort 匯入排序", isort),
        ("Ruff 靜態檢查", ["ruff", "check", "."]),
        ("Pylint 靜態分析", ["pylint", *SOURCES]),
        ("Pytest 單元測試", ["pytest", "-q"]),
    ]


def run_step(description: str, args: list[str]) -> tuple[bool, str]:
    """以目前的直譯器執行一個工具模組，回傳 (是否成功, 輸出)。"""
    cmd = [sys.executable, "-m", *args]
    print(f"\n{'=' * 60}\n{description}: {' '.join(cmd)}\n{'=' * 60}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False, cwd=ROOT)
    except OSError as e:
        print(f"❌ 執行錯誤: {e}")
        return False, str(e)

    output = (result.stdout + result.stderr).strip()
    print("✅ 成功" if result.returncode == 0 else "❌ 失敗")
    print(output or "(無輸出)")
    return result.returncode == 0, output


def main() -> int:
    parser = argparse.ArgumentParser(description="Run formatters, linters and tests")
    parser.add_argument("--fix", action="store_true", help="reformat files instead of checking")
    opts = parser.parse_args()

    results = [(desc, *run_step(desc, args)) for desc, args in build_steps(opts.fix)]

    print(f"\n{'=' * 60}\n總結報告\n{'=' * 60}")
    for desc, ok, _ in results:
        print(f"{desc}: {'✅ 通過' if ok else '❌ 失敗'}")

    failed = [(desc, out) for desc, ok, out in results if not ok]
    print(f"\n整體結果: {'❌ 有錯誤' if failed else '✅ 全部通過'}")
    for desc, out in failed:
        if out:
            print(f"\n--- {desc} 錯誤 ---\n{out}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
