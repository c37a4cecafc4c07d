"""CLI Argument Parsing"""

import argparse
import sys

import argcomplete

from ocmt import __version__

COMMANDS = {
    'commit': (),
    'changelog': ('cl',),
    'release': ('rel',),
    'pr': (),
    'deslop': (),
    'branch': (),
    'config': (),
}

_TOP_LEVEL_FLAGS = {'-h', '--help', '--version', '--install-completion'}
_ALIASES = {alias: name for name, aliases in COMMANDS.items() for alias in aliases}


def _command_names() -> set[str]:
    names = set(COMMANDS)
    for aliases in COMMANDS.values():
        names.update(aliases)
    return names


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='oc',
        description='AI-powered commit messages, branches, changelogs and PRs using OpenCode',
        epilog='Example: oc -a (stage everything, generate a message, commit)'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--install-completion', action='store_true', help='Install shell tab completion')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--verbose', action='store_true', help='Show debug logging')

    confirmable = argparse.ArgumentParser(add_help=False)
    confirmable.add_argument('-y', '--yes', action='store_true', help='Skip confirmation prompts')

    sub = parser.add_subparsers(dest='command', metavar='COMMAND')

    commit = sub.add_parser('commit', parents=[common, confirmable], help='Generate a commit message and commit (default)')
    commit.add_argument('message', nargs='?', help='Use this commit message instead of generating one')
    commit.add_argument('-a', '--all', action='store_true', help='Stage all changes before committing')
    commit.add_argument('--hint', type=str, metavar='TEXT', help='Add context: --hint "fixing the login bug"')
    commit.add_argument('--branch', type=str, metavar='NAME', help='Create this branch before committing')
    commit.add_argument('--no-branch', action='store_true', help='Never offer to create a branch')
    commit.add_argument('--no-deslop', action='store_true', help='Skip the deslop step')
    commit.add_argument('--push', action='store_true', help='Push after committing')

    changelog = sub.add_parser('changelog', aliases=['cl'], parents=[common], help='Generate a changelog from commits')
    changelog.add_argument('-f', '--from', dest='from_ref', metavar='REF', help='Starting commit/tag reference')
    changelog.add_argument('-t', '--to', dest='to_ref', default='HEAD', metavar='REF', help='Ending reference (default: HEAD)')
    changelog.add_argument('--save', action='store_true', help='Write the changelog file without asking')
    changelog.add_argument('--copy', action='store_true', help='Copy the changelog to the clipboard')

    release = sub.add_parser('release', aliases=['rel'], parents=[common, confirmable], help='Commit, write changelog, tag and push')
    release.add_argument('-f', '--from', dest='from_ref', metavar='REF', help='Starting commit/tag reference')
    release.add_argument('-v', '--version', dest='release_version', metavar='VERSION', help='Version for the release')
    release.add_argument('--tag', action='store_true', default=None, help='Create a git tag for the release')
    release.add_argument('--push', action='store_true', default=None, help='Push to remote after tagging')

    pr = sub.add_parser('pr', parents=[common, confirmable], help='Create a pull request for the current branch')
    pr.add_argument('--base', type=str, metavar='BRANCH', help='Target branch')
    pr.add_argument('--title', type=str, help='PR title (the body is generated if missing)')
    pr.add_argument('--body', type=str, help='PR body (the title is generated if missing)')
    pr.add_argument('--browser', action='store_true', help='Open the GitHub compare page instead')
    pr.add_argument('--open', action='store_true', default=None, help='Open the PR in the browser once created')

    deslop = sub.add_parser('deslop', parents=[common, confirmable], help='Remove AI slop from staged changes')
    deslop.add_argument('-i', '--instruction', type=str, metavar='TEXT', help='Extra instructions or exclusions')

    branch = sub.add_parser('branch', parents=[common, confirmable], help='Create a branch named from staged changes')
    branch.add_argument('name', nargs='?', help='Use this name instead of generating one')

    sub.add_parser('config', parents=[common], help='Show the effective configuration')

    return parser


def _with_default_command(argv: list[str]) -> list[str]:
    """'oc -a' means 'oc commit -a'."""
    if not argv:
        return ['commit']
    if argv[0] in _command_names() or argv[0] in _TOP_LEVEL_FLAGS:
        return argv
    return ['commit', *argv]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    argcomplete.autocomplete(parser)
    args = parser.parse_args(_with_default_command(list(sys.argv[1:] if argv is None else argv)))
    args.command = _ALIASES.get(args.command, args.command)
    return args
