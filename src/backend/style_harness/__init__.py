"""
Style Preference API test harness.

  - session: client-side session/iteration state (SessionIterationManager)
  - services: remote API client, session stores, profile normalization, status probes
  - api / main: FastAPI tester backend
  - cli: command-line session driver
"""
