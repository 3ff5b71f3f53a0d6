import argparse
import asyncio
import sys
from pathlib import Path

from shouw import DocumentRunner, ExecutionResult, load_config

# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)

def print_result(result: ExecutionResult):
    # Print side effects destined for stderr
    for effect in result.side_effects:
        if effect.get('topics') == ['stderr']:
            print(effect.get('message', ''), file=sys.stderr)
    if result.status == 'error':
        if result.hint:
            print(result.hint, file=sys.stderr)
        return
    if result.value:
        print(result.value)
    for kind, artifact in result.artifacts.items():
        print(f"[{kind}] {artifact!r}")

async def run_document_file(runner: DocumentRunner, file_path: str):
    """Render a document file non-interactively and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = await runner.handle_document(source)
    print_result(result)
    if result.status == 'error':
        raise SystemExit(1)

async def main(argv=None):
    """Render a document file when provided, otherwise start the interactive REPL."""
    parser = argparse.ArgumentParser(prog="shouw", description="Render $function[...] documents.")
    parser.add_argument("file", nargs="?", help="document to render")
    parser.add_argument("--config", help="YAML configuration file")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    runner = DocumentRunner(config=config)

    if args.file:
        await run_document_file(runner, args.file)
        return

    print("shouw REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    # REPL Loop
    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            print_result(await runner.handle_document(line))

        except EOFError:
            print("\nExiting.")
            break

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
