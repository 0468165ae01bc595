"""
Offline-first topic/task engine.

Components:
- sync/: records, rank allocation, local + remote stores, sync coordinator
- ui_state/: published state, drag-and-drop ordering, debounce + drag guard
- cli/, connectors/: console front-end and composition root
"""
