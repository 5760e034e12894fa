"""versync - dependency-aware semantic version bumps for JS monorepos."""
