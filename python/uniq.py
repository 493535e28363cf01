#!/usr/bin/env python3
"""
Name: uniq
Description: report or filter out repeated lines in a file
Author: Jonathan Feinberg, jdf@pobox.com (Original Perl Author)
License: perl
"""

import sys
import os
import argparse
import re
from collections import namedtuple
from enum import Enum
from functools import partial

# Constants
EX_SUCCESS = 0
EX_FAILURE = 1
VERSION = '1.3'

# Minimum width of the occurrence count printed by -c.
COUNT_WIDTH = 4

# Used only to count characters for -s; lines are never rewritten.
ENCODING = 'utf-8'


class Mode(Enum):
    ALL = 0
    REPEATED = 1
    UNIQUE = 2


# One maximal block of adjacent lines sharing a key. `line` is the raw line
# (terminator included) that opened the block.
Run = namedtuple('Run', ['key', 'line', 'count'])

Config = namedtuple('Config', ['skip_fields', 'skip_chars', 'show_count', 'mode'],
                    defaults=(0, 0, False, Mode.ALL))


# --- Errors ---

class UniqError(Exception):
    """Base class for failures that abort a uniq run."""
    action = 'I/O error on'

    def __init__(self, filename, strerror):
        super().__init__(filename, strerror)
        self.filename = filename
        self.strerror = strerror

    def __str__(self):
        name = self.filename if self.filename.startswith('<') else f"'{self.filename}'"
        return f"{self.action} {name}: {self.strerror}"


class IOOpenError(UniqError):
    action = 'failed to open'


class IOReadError(UniqError):
    action = 'read error on'


class IOWriteError(UniqError):
    action = 'write error on'


# --- Line source ---

class LineSource:
    """
    Yields raw lines, terminators included, from a single binary stream.
    Lines are never decoded, so CR, LF and CRLF endings come out exactly
    as they went in.
    """
    def __init__(self, name, stream, owned=True):
        self.name = name
        self.stream = stream
        self.owned = owned

    def next_line(self):
        """Returns the next line, or None at end of input."""
        try:
            line = self.stream.readline()
        except OSError as e:
            raise IOReadError(self.name, e.strerror or str(e)) from e
        return line or None

    def __iter__(self):
        return self

    def __next__(self):
        line = self.next_line()
        if line is None:
            raise StopIteration
        return line

    def close(self):
        # Never close the process's stdin.
        if self.owned:
            self.stream.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def open_input(path):
    """Opens `path` for reading, '-' meaning standard input."""
    if path == '-':
        return LineSource('<stdin>', sys.stdin.buffer, owned=False)

    if os.path.isdir(path):
        raise IOOpenError(path, 'Is a directory')

    try:
        return LineSource(path, open(path, 'rb'))
    except OSError as e:
        raise IOOpenError(path, e.strerror or str(e)) from e


# --- Comparison keys ---

def strip_terminator(line: bytes) -> bytes:
    """Removes one trailing CRLF or LF, nothing else."""
    if line.endswith(b'\r\n'):
        return line[:-2]
    if line.endswith(b'\n'):
        return line[:-1]
    return line


def key_of(line: bytes, skip_fields: int = 0, skip_chars: int = 0) -> bytes:
    """
    Extracts the part of the line to be used for comparison,
    respecting the -f (fields) and -s (chars) options.
    """
    key = strip_terminator(line)

    # 1. Skip fields: whitespace-separated, rejoined with single spaces.
    if skip_fields > 0:
        key = b' '.join(key.split()[skip_fields:])

    # 2. Skip characters from what is left. Undecodable bytes count as
    # one character each and come back unchanged.
    if skip_chars > 0:
        text = key.decode(ENCODING, 'surrogateescape')
        key = text[skip_chars:].encode(ENCODING, 'surrogateescape')

    return key


# --- Run accumulation ---

class RunAccumulator:
    """
    Groups adjacent lines with equal keys. At most one run is open at a
    time; it is handed back exactly once, either by the feed() that brings
    a different key or by finish().
    """
    def __init__(self):
        self.key = None
        self.line = None
        self.count = 0

    def feed(self, key, line):
        """Adds one line. Returns the run it closed, if any."""
        if self.count and key == self.key:
            self.count += 1
            return None

        closed = self._close()
        self.key = key
        self.line = line
        self.count = 1
        return closed

    def finish(self):
        """Signals end of input. Returns the last open run, if any."""
        return self._close()

    def _close(self):
        if not self.count:
            return None
        run = Run(self.key, self.line, self.count)
        self.key = self.line = None
        self.count = 0
        return run


def runs(lines, key_func=key_of):
    """Yields every maximal run in `lines`, in input order."""
    accumulator = RunAccumulator()
    for line in lines:
        run = accumulator.feed(key_func(line), line)
        if run is not None:
            yield run

    run = accumulator.finish()
    if run is not None:
        yield run


# --- Mode filter ---

def passes(run, mode):
    """Decides whether a finished run is printed under `mode`."""
    if mode is Mode.REPEATED:
        return run.count >= 2
    if mode is Mode.UNIQUE:
        return run.count == 1
    return True


# --- Output ---

class RunWriter:
    """Writes runs to a single binary destination."""
    def __init__(self, name, stream, config, owned=True):
        self.name = name
        self.stream = stream
        self.config = config
        self.owned = owned

    def format(self, run):
        if self.config.show_count:
            return f"{run.count:{COUNT_WIDTH}d} ".encode('ascii') + run.line
        return run.line

    def emit(self, run):
        self._write(self.format(run))

    def _write(self, data):
        try:
            self.stream.write(data)
        except BrokenPipeError:
            raise
        except OSError as e:
            raise IOWriteError(self.name, e.strerror or str(e)) from e

    def close(self, quiet=False):
        """
        Flushes the destination and closes it if we opened it. With `quiet`,
        flush and close failures are ignored.
        """
        try:
            try:
                self.stream.flush()
            finally:
                if self.owned:
                    self.stream.close()
        except BrokenPipeError:
            if not quiet:
                raise
        except OSError as e:
            if not quiet:
                raise IOWriteError(self.name, e.strerror or str(e)) from e

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close(quiet=exc_type is not None)


def open_output(path, config):
    """Opens the output file (created or truncated), or stdout if `path` is None."""
    if path is None:
        return RunWriter('<stdout>', sys.stdout.buffer, config, owned=False)

    try:
        return RunWriter(path, open(path, 'wb'), config)
    except OSError as e:
        raise IOOpenError(path, e.strerror or str(e)) from e


# --- Engine ---

def uniq_stream(source, writer, config):
    """
    Runs one pass over `source`, writing each run that passes the mode
    filter. Returns the number of records written.
    """
    key_func = partial(key_of, skip_fields=config.skip_fields, skip_chars=config.skip_chars)
    written = 0
    for run in runs(source, key_func):
        if passes(run, config.mode):
            writer.emit(run)
            written += 1
    return written


# --- Command line ---

def preprocess_argv(args_list: list) -> list:
    """
    Translates the historic '-NUMBER' and '+NUMBER' options to
    '-f NUMBER' and '-s NUMBER'. Nothing after '--' is touched.
    """
    processed_args = []
    for i, arg in enumerate(args_list):
        if arg == '--':
            processed_args.extend(args_list[i:])
            break
        if re.match(r'^-(\d+)$', arg):
            processed_args.extend(['-f', arg[1:]])
        elif re.match(r'^\+(\d+)$', arg):
            processed_args.extend(['-s', arg[1:]])
        else:
            processed_args.append(arg)
    return processed_args


def non_negative_int(value):
    """argparse type for -f and -s."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number '{value}'")
    if number < 0:
        raise argparse.ArgumentTypeError(f"'{value}' must not be negative")
    return number


def build_parser():
    parser = argparse.ArgumentParser(
        prog='uniq',
        description="Report or filter out repeated adjacent lines in a file.",
        usage="%(prog)s [-c] [-d | -u] [-f fields] [-s chars] [input_file [output_file]]"
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {VERSION}')
    parser.add_argument('-c', '--count', action='store_true', help='Precede each line with its repetition count.')

    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument('-d', '--repeated', action='store_true', help='Only print duplicate lines, one for each group.')
    mode_group.add_argument('-u', '--unique', action='store_true', help='Only print lines that are not repeated.')

    parser.add_argument('-f', '--skip-fields', type=non_negative_int, default=0, metavar='N',
                        help='Avoid comparing the first N fields.')
    parser.add_argument('-s', '--skip-chars', type=non_negative_int, default=0, metavar='N',
                        help='Avoid comparing the first N characters.')

    parser.add_argument('input_file', nargs='?', default='-', help="Input file (default: stdin).")
    parser.add_argument('output_file', nargs='?', help="Output file (default: stdout).")
    return parser


def config_from_args(args):
    """Builds the immutable run configuration from parsed arguments."""
    if args.repeated:
        mode = Mode.REPEATED
    elif args.unique:
        mode = Mode.UNIQUE
    else:
        mode = Mode.ALL
    return Config(
        skip_fields=args.skip_fields,
        skip_chars=args.skip_chars,
        show_count=args.count,
        mode=mode,
    )


def main(argv=None):
    """Parses arguments and runs the uniq logic."""
    program_name = os.path.basename(sys.argv[0])
    if argv is None:
        argv = sys.argv[1:]

    # argparse reports bad arguments and exits before any file is opened.
    args = build_parser().parse_args(preprocess_argv(argv))
    config = config_from_args(args)

    try:
        with open_input(args.input_file) as source:
            with open_output(args.output_file, config) as writer:
                uniq_stream(source, writer, config)
    except UniqError as e:
        print(f"{program_name}: {e}", file=sys.stderr)
        return EX_FAILURE
    except BrokenPipeError:
        # The reader went away (e.g. `uniq file | head`); silence the
        # interpreter's own flush of stdout at shutdown.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return EX_FAILURE

    return EX_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
