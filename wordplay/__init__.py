"""
Wordplay — Daily Word-Guessing Game Service
============================================
A Wordle-style game played as a solo daily, as practice or custom-word
rounds, and in asynchronous multiplayer arenas.  Daily-play streaks can be
protected by streak-freeze tokens that are earned at milestones or bought,
and whose balance lives on an external chain.

Package layout::

    wordplay/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Game constants + date helpers
    ├── exceptions.py      # Structured error hierarchy
    ├── data/              # Bundled answer / guess word lists
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   └── models.py      # ORM models (games, arenas, freezes)
    ├── engine/
    │   ├── evaluator.py   # Guess coloring, hard mode, validation
    │   ├── words.py       # Word lists + deterministic word selection
    │   ├── games.py       # User/game keys, projections, share text
    │   ├── streaks.py     # Streak grouping over sparse win dates
    │   ├── arena.py       # Arena membership / availability / sudden death
    │   └── ranking.py     # Dense + standard ranking helpers
    ├── services/
    │   ├── game_service.py        # load-or-create, guess, undo, reset
    │   ├── arena_service.py       # create, join, play, kick, results
    │   ├── streak_service.py      # Streaks + user stats from history
    │   ├── freeze_service.py      # Streak-freeze ledger
    │   ├── leaderboard_service.py # Score / wins / streak views
    │   ├── chain.py               # On-chain verifier (JSON-RPC)
    │   ├── wallets.py             # Wallet resolver
    │   └── notifications.py       # Notification dispatcher
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth + shared dependencies
        └── routes/        # games, arenas, streak-freeze, leaderboard
"""

__version__ = "0.1.0"
