# duffle

A command-line tool and Python library for working with Cloud Native
Application Bundles (CNAB) on your local machine. It sets up a local
workspace directory, manages credential sets, computes bundle digests and
runs external driver programs.

## Installation

```
pip install .
```

## Command line

Global options: `--home PATH` selects the workspace (default `$DUFFLE_HOME`,
otherwise `.duffle` in your home directory) and `-v`/`--verbose` turns on
debug logging. Every command except `init` and `version` first makes sure
the workspace exists.

Set up the workspace:

```
duffle init
duffle init --dry-run
```

This creates the workspace directory with `bundles`, `logs`, `plugins`,
`claims` and `credentials` subdirectories and an empty `repositories.json`.
`--dry-run` only lists what would be created.

Print the version:

```
duffle version
```

Manage credential sets (alias `creds`, `credential`, `cred`):

```
duffle credentials add path/to/mycreds.yaml
duffle credentials list
duffle credentials list --short
duffle credentials show mycreds
duffle credentials show mycreds --unredacted
duffle credentials remove mycreds
duffle credentials generate mycreds -f path/to/bundle.json
duffle credentials generate mycreds -f path/to/bundle.json --no-prompt --dry-run
```

`add` accepts several files; each must be a valid credential set whose file
name (without extension) matches its `name`, and must not already be in the
workspace. `show` prints literal values as `REDACTED` unless `--unredacted`
is given. `generate` reads the credential names from a bundle JSON file and
either prompts for a source for each one or, with `--no-prompt`, writes stub
values of `EMPTY`; `--dry-run` prints the result instead of saving it.

A credential set is a YAML file:

```yaml
name: mycreds
credentials:
  - name: user_token
    source:
      env: USER_TOKEN
  - name: kubeconfig
    source:
      path: /home/me/.kube/config
```

Each credential can come from a shell `command`, a file `path`, an
environment variable `env` or a literal `value`, tried in that order.

## Library

```python
import sys

from duffle.digest import of_buffer
from duffle.credentials import load_credential_set, load_credentials
from duffle.workspace import DuffleHome, default_home, initialize, validate_repository

print(of_buffer(b"hello world!"))  # 7509e5bda0c762d2bac7f90d758b5b2263fa01cc

home = DuffleHome(default_home())
initialize(home, sys.stdout, dry_run=True)

creds = load_credentials(["mycreds"], home.credentials())
validate_repository("example.com:5000/user")
```

- `duffle.digest`: `of_buffer` and `of_reader` give the first 20 bytes of a
  SHA-256 digest as hex.
- `duffle.credentials`: loading, resolving, adding, listing, removing and
  formatting credential sets; errors are raised as `CredentialError`.
- `duffle.workspace`: `DuffleHome` paths, `initialize`, and
  `validate_repository` for registry repository prefixes (raises `ValueError`).
- `duffle.driver`: `CommandDriver` runs an external `duffle-<name>` program,
  passing an `Operation` as JSON on standard input; `DriverWithRelocationMapping`
  wraps a driver so the invocation image is rewritten through a relocation
  mapping; failures raise `DriverError`.
- `duffle.summary`: `Summary` and `SummaryStatusCode` for build status,
  `DockerfileNotExistError`, and `new_ulid` for build identifiers.

## What it does not do

There are no commands to build, install, upgrade, uninstall or run bundles,
no bundle storage or listing, no claim records, no export, import or image
relocation commands, and no built-in Docker or Kubernetes drivers.
`credentials generate` only reads a bundle file given with `-f`; it does not
look bundles up by name.

## Running the tests

```
pip install .[test]
pytest
```