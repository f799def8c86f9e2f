import asyncio
import os
import signal
import sys
from pathlib import Path

from pycell import EngineConfig, create_executor, load_config

# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)

def make_config(root_dir=None) -> EngineConfig:
    """Config from $PYCELL_CONFIG when set, else defaults rooted at `root_dir`."""
    path = os.environ.get("PYCELL_CONFIG")
    if path:
        return load_config(path)
    return EngineConfig(root_dir=root_dir)

async def run_cell(executor, source: str) -> bool:
    """Run one cell; Ctrl+C while it is suspended interrupts it."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, executor.interrupt)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        installed = False
    try:
        return await executor.execute(source)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)

async def read_cell(first_line: str) -> str:
    """Lines ending with ':' or '\\' open a block that ends at an empty line."""
    lines = [first_line]
    if not first_line.rstrip().endswith((":", "\\")):
        return first_line
    while True:
        raw = await ainput("... ")
        if raw == "" or not raw.strip():
            break
        lines.append(raw.rstrip("\n"))
    return "\n".join(lines)

async def run_script_file(file_path: str):
    """Run a file as a single cell and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    executor = create_executor(config=make_config(str(p.parent.resolve())))
    try:
        ok = await run_cell(executor, source)
    finally:
        executor.close()
    if not ok:
        raise SystemExit(1)

async def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            await run_script_file(arg)
            return

    print("pycell REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    executor = create_executor(config=make_config(str(Path.cwd())))
    try:
        while True:
            try:
                raw = await ainput(">> ")
                if raw == "":
                    raise EOFError
                line = raw.rstrip("\n")

                if not line.strip():
                    continue
                if line.strip() == "exit":
                    break
                if line.strip() == "%reset":
                    executor.reset()
                    continue

                cell = await read_cell(line)
                # Results and errors are written by the executor's console sink.
                await run_cell(executor, cell)

            except EOFError:
                print("\nExiting.")
                break
    finally:
        executor.close()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
