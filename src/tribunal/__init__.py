"""
Tribunal - community timeout votes for Discord

Tribunal lets trusted members of a server put a disruptive member to a
reaction vote. Booster votes count double, abstaining is punished, and the
weighted result picks a timeout tier when the vote closes.

Core Components:

- **Voting**: vote lifecycle state machine, weight policy, cooldowns and
  sanction arithmetic
- **Storage**: SQLite tables for votes, reactions, cooldowns and abstain
  counters, accessed through one aiosqlite connection
- **Scheduling**: one-shot completion jobs plus a periodic reconciliation sweep

Usage:
    from tribunal.main import main
    main()
"""
