"""In-memory virtual file system.

Layout of a fresh session:
    /
    ├── readme.txt
    ├── docs/
    └── src/                # reserved baseline subtree (the shell's own source)

Long-running commands add well-known entries:
    /agent_killer.py
    /docs/agent_hopper_analysis.md
    /docs/deep_dive_intel.md
    /docs/specs/defense_architecture.md
    /exploits/*             # research artifacts
    /browse/*.md            # cached pages
"""
