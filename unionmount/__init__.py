"""unionmount keeps union mount points in sync with the available directories."""
