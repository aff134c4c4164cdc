"""HouseHunt acquisition core.

Acquires structured data from sites that expose no public API:
- fetcher: plain HTTP retrieval with bounded redirects and custom DNS
- browser: Playwright session with stealth and human-like input
- flows: per-site automation state machines
- retry: retry policy, backoff and failure diagnostics
- extraction: listing, school and NAPLAN parsing heuristics
- quality: benchmark-relative NAPLAN quality score
- cache: bounded TTL lookup cache
- pipeline: caller-facing acquisition and enrichment
"""

__version__ = "1.0.0"
