"""Module defining various global constants."""

# unionmount version
VERSION = "1.0.0"

# Protocol spoken between the daemon and its privileged helper.
# The major version must be identical on both sides.
PROTOCOL_VERSION = "1.0.0"

# Exit code for fatal unionmount failures.
ERROR_CODE = 1

# Default location of the mount configuration file.
DEFAULT_CONFIG_PATH = "~/.unionmount/config"

# Lock file that allows only a single daemon instance per user.
LOCK_PATH = "~/.unionmount/lock"

# Kernel mount table of the current mount namespace.
MOUNT_TABLE_PATH = "/proc/self/mountinfo"

# Directories where removable and auxiliary file systems get attached.
WATCHED_ROOTS = ["/mnt", "/media"]

# Seconds to wait for mount activity before re-checking anyway.
EVENT_TIMEOUT = 5

# mhddfs places new files on the branch with the most free space. A branch is only
# considered full once less than mlimit is left, so 1024G keeps balancing on any size.
UNION_OPTIONS = ["allow_other", "mlimit=1024G"]

# File system type reported for mhddfs unions.
UNION_FS_TYPE = "fuse.mhddfs"

# Upper bound on unmount calls while draining stacked mounts from one mount point.
MAX_UNMOUNT_ATTEMPTS = 32

# Number of recent command outputs kept for fatal error reports.
COMMAND_LOG_SIZE = 64

# Port range for the privileged helper's RPC endpoint.
HELPER_PORT_RANGE = (30000, 32000)

# Milliseconds to wait for the privileged helper to answer its first ping.
HELPER_PING_TIMEOUT = 30000

# External programs required at run time.
REQUIRED_PROGRAMS = ["mount", "umount", "mhddfs", "inotifywait"]
