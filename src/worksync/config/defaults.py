"""Default configuration values and starter .worksync.toml template."""

DEFAULT_TOML = """\
# worksync configuration
version = "1.0"

[backend]
url = "http://localhost:8080"
timeout = 30.0            # seconds per request

[polling]
interval = 5.0            # seconds between diff / status refreshes
diff = true
status = true

[commit]
message_prefix = "claude-"   # commit message = prefix + ISO-8601 timestamp

[logging]
level = "INFO"            # DEBUG | INFO | WARNING | ERROR
# file = "~/.worksync/worksync.log"
# max_bytes = 10485760
# backup_count = 5

[repositories]
file = ".worksync-repos.yaml"
"""

REPOS_YAML = """\
# Named working copies. Either a plain list, or grouped as provider -> group -> list.
- alias: example
  provider: github
  owner: octocat
  name: hello-world
  # path: /srv/repos/github/octocat/hello-world   # omit to let the backend clone it
  clone_url: https://github.com/octocat/hello-world.git
"""
