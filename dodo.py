# -*- coding: utf-8 -*-
# pydoit task file
# see https://pydoit.org/
# run from this dir with `doit`, or `doit list`, `doit help` etc. (pip install doit 1st)

from doit.action import CmdAction

TEST_HELP = """echo '
{title}
{underline}

Filter Options:
  -k, --keyword TEXT    Only run tests matching the keyword expression
                        Example: -k "fetch and not slow"
  -s, --speed TEXT      Filter tests by speed:
                        - "slow": Run only slow tests
                        - "not slow" or "fast": Skip slow tests
                        - "all": Run all tests regardless of speed
  -r, --retry           Only run previously failed tests

Output Options:
  -p, --print-logs      Print test logs to console instead of capturing
  -f, --full-trace      Show full traceback on errors
  -t, --show-time       Display duration of all tests

Examples:
  doit {task}                     # Run all tests
  doit {task} -k fetch            # Run tests containing "fetch"
  doit {task} -s fast -p          # Run fast tests with logs
  doit {task} --retry --show-time # Rerun failed tests with timing
{extra}  '"""


def _build_pytest_command(
    test_dir,
    keyword="",
    speed="",
    retry=False,
    print_logs=False,
    full_trace=False,
    show_time=False,
):
    """Helper function to build pytest commands for test tasks."""
    cmd = ["pytest"]

    if print_logs:
        cmd.append("--capture=no")
    if full_trace:
        cmd.append("--full-trace")
    if show_time:
        cmd.append("--durations=0")

    cmd.extend(["--color=yes", "-vv", "-x"])

    if retry:
        cmd.append("--lf")
    if keyword:
        cmd.extend(["-k", keyword])
    if speed:
        if speed == "slow":
            cmd.extend(["-m", "slow"])
        elif speed in ["not slow", "fast"]:
            cmd.extend(["-m", '"not slow"'])
        elif speed == "all":
            pass
        else:
            raise ValueError(
                f"Invalid speed filter: {speed}. Use 'slow', 'not slow', 'fast', or 'all'"
            )

    cmd.append(test_dir)

    return " ".join(cmd)


def _help_param():
    return {
        "name": "help",
        "long": "help",
        "default": False,
        "type": bool,
    }


def _test_params():
    return [
        _help_param(),
        {"name": "keyword", "short": "k", "default": ""},
        {"name": "speed", "short": "s", "default": ""},
        {"name": "retry", "short": "r", "default": False, "type": bool},
        {"name": "print_logs", "short": "p", "default": False, "type": bool},
        {"name": "full_trace", "short": "f", "default": False, "type": bool},
        {"name": "show_time", "short": "t", "default": False, "type": bool},
    ]


def _test_task(test_dir, task, title, extra=""):
    def router(keyword, speed, retry, print_logs, full_trace, show_time, help=False):
        if help:
            return TEST_HELP.format(
                title=title, underline="=" * len(title), task=task, extra=extra
            )
        try:
            return _build_pytest_command(
                test_dir,
                keyword=keyword,
                speed=speed,
                retry=retry,
                print_logs=print_logs,
                full_trace=full_trace,
                show_time=show_time,
            )
        except ValueError as e:
            return f"echo 'Error: {str(e)}' && exit 1"

    return {
        "actions": [CmdAction(router)],
        "params": _test_params(),
        "verbosity": 2,
    }


def task_make_env():
    """Create a conda environment"""
    return {
        "actions": ["conda create --prefix ./conda_env python=3.11"],
        "targets": ["./conda_env"],
        "uptodate": [True],  # Only run if target doesn't exist
        "verbosity": 2,
    }


def task_install():
    """Install dtdaq in editable mode, with test extras"""
    return {
        "actions": ["pip install -e .[test]"],
        "task_dep": ["make_env"],
        "verbosity": 2,
    }


def task_test_logic():
    """Run the logic test suite (tests in test/logic/, no hardware needed)."""
    return _test_task("test/logic/", "test_logic", "Test Logic Runner Help")


def task_test_hardware():
    """Run the hardware test suite (tests in test/hardware/)."""
    return _test_task(
        "test/hardware/",
        "test_hardware",
        "Test Hardware Runner Help",
        extra="\nSet DTDAQ_HOST (and optionally DTDAQ_PORT) to the DT8824 address,\n"
        "otherwise every hardware test is skipped.\n",
    )


def task_identify():
    """Print the identity of a DT8824 listed in ~/.dtdaq/devices.ini."""

    def router(name, help=False):
        if help:
            return """echo '
Device Identify Help
====================

Connects to the named device from ~/.dtdaq/devices.ini and prints
its *IDN? reply, the enabled channels and the device error count.

  doit identify -n lab_daq
  '"""
        if not name:
            return "echo 'Error: pass a device name with -n' && exit 1"
        return (
            'python -c "'
            "from dtdaq import DT8824; "
            "from dtdaq.util import load_device_config; "
            f"d = DT8824.from_config(load_device_config('{name}')); "
            "ok, msg = d.open(); print(msg); "
            "ok and print(d.identify(), d.get_enabled_channels(), d.error_count()); "
            'd.close()"'
        )

    return {
        "actions": [CmdAction(router)],
        "params": [_help_param(), {"name": "name", "short": "n", "default": ""}],
        "verbosity": 2,
    }


def task_format():
    """Format code using ruff."""

    def router(help=False):
        if help:
            return """echo '
Code Formatter Help
=================

This task runs the ruff formatter to ensure consistent code style:
- Sorts imports (ruff check --select I --fix)
- Formats code (ruff format)

Formats these locations:
- src/dtdaq/
- test/
- dodo.py

No options required - simply run:
  doit format
  '"""
        return (
            "ruff check --select I --fix src/dtdaq test/ dodo.py"
            " && ruff format src/dtdaq test/ dodo.py"
        )

    return {
        "actions": [CmdAction(router)],
        "params": [_help_param()],
        "verbosity": 2,
    }
