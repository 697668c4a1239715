"""
Audit Services

Organized by responsibility:

1. probing/ - One bounded HTTP investigation per URL
   - url_prober.py: Manual redirect walk, body sample, network error mapping
   - signatures.py: Bot-protection and JS-dependency signature catalog

2. scoring/ - Pure scoring
   - scoring_engine.py: 0-100 score breakdown and recommendation

3. discovery/ - Candidate URLs for a root domain
   - robots_parser.py: Sitemap directives, user-agent rules, crawl-delay
   - sitemap_parser.py: gzip, sitemap indexes, <loc> extraction
   - domain_discovery.py: robots.txt + sitemaps + common paths

4. orchestration/ - Batch execution
   - batch_orchestrator.py: Chunked concurrent waves with progress
   - summary.py: Batch-level statistics

5. store.py - Session/result persistence (in-memory and SQLAlchemy)
6. audit_service.py - Session state machine tying it all together
"""
