"""
creator_sourcing — TikTok creator discovery and Airtable sync.

Pipeline steps (one seed at a time, one record at a time):
  1. producer   — run the TikTok scraper actor for a search term or hashtag
  2. normalize  — map each raw scraper record onto one profile shape
  3. filters    — follower band + best-effort US check
  4. ledger     — drop handles already emitted by this or an earlier run
  5. airtable   — find-then-create/update the creator row (rate limited)
  6. storage    — append the profile to the dataset, persist the ledger

Entry point: python -m creator_sourcing.run --config config/config.yaml
"""
