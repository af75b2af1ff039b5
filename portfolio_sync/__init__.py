"""portfolio-sync: public software footprint synchronization.

Pulls repositories from code forges (GitHub, GitLab), published packages from
registries (crates.io, npm) and merged external contributions, normalizes them
and upserts into PostgreSQL on a recurring schedule.
"""

__version__ = "0.1.0"
