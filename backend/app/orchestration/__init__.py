"""
Orchestration package - guided intake conversations
"""
