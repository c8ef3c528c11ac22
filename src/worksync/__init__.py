"""worksync — keep a working copy's diff, branches and status in step with a git backend."""

__version__ = "0.1.0"
