"""
CLI entry point, when used as a module: `python -m kapi`.

Useful for debugging in the IDEs (use the start-mode "Module", module "kapi").
"""
from kapi import cli

if __name__ == '__main__':
    cli.main()
