"""User-facing status and error messages in English and Chinese."""

from typing import Dict

CATALOGS: Dict[str, Dict[str, str]] = {
    "en": {
        "connecting": "Connecting to server, processing your question...",
        "connected": "Connection established",
        "processing_stage": "Processing {stage}",
        "processing_substage": "Processing substage: {substage}",
        "papers_found": "Found {count} papers",
        "images_found": "Found {count} related images",
        "streaming": "Streaming response",
        "chunk_complete": "Chunk complete",
        "complete": "Response complete",
        "error": "Error: {message}",
        "unknown_error": "Unknown error",
        "parse_error": "Error parsing response data",
        "connection_error": "Connection error: {message}",
        "server_status_error": "Server returned error: {code}",
        "unexpected_disconnect": "Connection closed unexpectedly",
        "cancelled": "Request cancelled",
    },
    "zh": {
        "connecting": "连接到服务器，正在处理您的问题...",
        "connected": "连接已建立",
        "processing_stage": "正在处理 {stage}",
        "processing_substage": "正在处理子阶段: {substage}",
        "papers_found": "找到 {count} 篇论文",
        "images_found": "找到 {count} 张相关图片",
        "streaming": "开始流式生成回答",
        "chunk_complete": "片段完成",
        "complete": "响应完成",
        "error": "错误: {message}",
        "unknown_error": "未知错误",
        "parse_error": "解析响应数据时出错",
        "connection_error": "连接错误: {message}",
        "server_status_error": "服务器返回错误: {code}",
        "unexpected_disconnect": "连接意外关闭",
        "cancelled": "请求已取消",
    },
}


class Messages:
    """Looks up a message by key in the configured locale.

    Unknown locales fall back to English; a key missing from a non-English
    catalog also falls back to the English text.
    """

    def __init__(self, locale: str = "en"):
        self.locale = locale if locale in CATALOGS else "en"
        self._catalog = CATALOGS[self.locale]

    def get(self, key: str, **kwargs) -> str:
        template = self._catalog.get(key) or CATALOGS["en"][key]
        return template.format(**kwargs) if kwargs else template
