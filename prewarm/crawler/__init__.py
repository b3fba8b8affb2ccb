from .crawler import BackgroundCrawler, CrawlResult, CrawlTask

__all__ = ["BackgroundCrawler", "CrawlResult", "CrawlTask"]
