"""devtool - unified updater for Homebrew, Rustup and Mise."""

__version__ = "0.3.0"
