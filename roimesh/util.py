"""
General-purpose helpers: logging setup, file discovery, and directory creation.

Functions
---------
setup_logging(log_file=None, level=logging.INFO)
    Attach console and optional file handlers to the root logger.
check_many(multiple, target, func=None)
    Flexible substring matching.
get_files(target_path, suffix, strings=(""), prefix=None, check="all", depth="all")
    Structured (optionally recursive) file retrieval.
make_directory(root_path, extended_dir)
    Directory creation with automatic parent handling.
"""

import logging
import os
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(message)s'


def setup_logging(log_file=None, level=logging.INFO):
    """
    Configure the root logger to write to the console and, optionally, to a file.

    Handlers attached by an earlier call are reused, so calling this repeatedly does not
    duplicate log lines.

    Parameters
    ----------
    log_file : str or pathlib.Path, optional
        Path of a log file. If None, only console logging is configured.
    level : int, optional
        Logging level applied to the root logger and its handlers. Default is `logging.INFO`.

    Returns
    -------
    logging.Logger
        The configured root logger.
    """
    root = logging.getLogger()
    root.setLevel(level)

    console_handler = _find_handler(root)
    if console_handler is None:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(console_handler)
    console_handler.setLevel(level)

    if log_file is not None:
        file_handler = _find_handler(root, log_file=log_file)
        if file_handler is None:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(file_handler)
        file_handler.setLevel(level)

    return root


def _find_handler(logger, log_file=None):
    """
    Return the handler of `logger` writing with `LOG_FORMAT` to `log_file`, or to the console
    when `log_file` is None.
    """
    for handler in logger.handlers:
        fmt = getattr(handler.formatter, "_fmt", None)
        if fmt != LOG_FORMAT:
            continue
        if log_file is None:
            if type(handler) is logging.StreamHandler:  # pylint: disable=C0123
                return handler
        elif isinstance(handler, logging.FileHandler) and \
                handler.baseFilename == os.path.abspath(log_file):
            return handler
    return None


def check_many(multiple, target, func=None):
    """
    Evaluate whether multiple substrings occur within a target string.

    Parameters
    ----------
    multiple : list of str
        Substrings to search for within the target string.
    target : str
        String in which to search for the specified substrings.
    func : {'all', 'any'}
        Search mode: `'all'` returns True only if all substrings are found, `'any'` returns True
        if at least one substring is found.

    Returns
    -------
    bool
        True if the condition specified by `func` is satisfied; False otherwise.

    Raises
    ------
    ValueError
        If `func` is not `'all'` or `'any'`.
    """

    func_dict = {
        "all": all, "any": any
    }
    if func in func_dict:
        use_func = func_dict[func]
    else:
        raise ValueError("pick function 'all' or 'any'")
    check_ = []
    for i in multiple:
        check_.append(i in target)
    return use_func(check_)


def get_files(target_path, suffix, strings=(""), prefix=None, check="all", depth="all"):
    """
    Retrieve files from a directory matching a suffix, a prefix, and substrings.

    Parameters
    ----------
    target_path : str or pathlib.Path
        Root directory in which to search for files.
    suffix : str
        File ending to match, in the form '*.ext'. Compound endings such as '*.nii.gz' are
        supported.
    strings : list of str, optional
        Substrings to be matched within each filename. Default is an empty string.
    prefix : str, optional
        Restrict results to filenames beginning with this prefix. Default is None.
    check : {'all', 'any'}, optional
        Substring matching mode. Default is `'all'`.
    depth : {'all', 'one'}, optional
        `'all'` searches recursively, `'one'` only the top-level directory. Default is `'all'`.

    Returns
    -------
    files : list of pathlib.Path
        Sorted list of paths to files matching the specified criteria.
    """

    path = Path(target_path)
    ending = suffix[1:]
    files = []
    if depth == "all":
        files = [file for file in path.rglob(suffix)
                 if file.is_file() and file.name.endswith(ending) and
                 check_many(strings, file.name, check)]
    elif depth == "one":
        files = [file for file in path.iterdir()
                 if file.is_file() and file.name.endswith(ending) and
                 check_many(strings, file.name, check)]

    if isinstance(prefix, str):
        files = [file for file in files if file.name.startswith(prefix)]
    files.sort(key=lambda x: x.name)
    return files


def make_directory(root_path, extended_dir):
    """
    Create a directory (and all necessary parent directories) within a root path.

    Parameters
    ----------
    root_path : str or pathlib.Path
        The root directory in which to create the new directory.
    extended_dir : str or list of str
        Subdirectory (or sequence of nested subdirectories) to create within `root_path`.

    Returns
    -------
    root_path : pathlib.Path
        Path of the created directory.
    """

    root_path = Path(root_path)
    if isinstance(extended_dir, list):
        root_path = root_path.joinpath(*extended_dir)
    else:
        root_path = root_path.joinpath(extended_dir)

    root_path.mkdir(parents=True, exist_ok=True)
    return root_path
