"""Pilot - state, base actions, action phases, safety pre-pass, mode handlers, command router."""
