"""Shared configuration and logging for AgentFlow"""
