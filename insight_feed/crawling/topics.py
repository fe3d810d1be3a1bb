from __future__ import annotations

from typing import List

from .models import TopicRecord

DEFAULT_TOPICS: List[TopicRecord] = [
    TopicRecord("ai", "Artificial Intelligence", "🤖", "Machine learning research, model releases and AI products."),
    TopicRecord("startups", "Startups & VC", "🚀", "Company launches, funding rounds and venture trends."),
    TopicRecord("marketing", "Marketing & Growth", "📈", "Acquisition channels, growth tactics and brand strategy."),
    TopicRecord("finance", "Finance & Markets", "💰", "Markets, macroeconomics and personal finance."),
    TopicRecord("health", "Health & Wellness", "❤️", "Medical findings, fitness and mental health."),
    TopicRecord("tech", "Technology", "💻", "Software, hardware and the wider tech industry."),
    TopicRecord("science", "Science & Research", "🔬", "Scientific discoveries and research publications."),
    TopicRecord("productivity", "Productivity", "⚡", "Work habits, tools and time management."),
]
