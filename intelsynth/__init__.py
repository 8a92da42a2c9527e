"""Synthesis pipeline: research notes in, validated and cached competitive-intelligence bundle out."""
