"""领域层模型与协议。

包含：
- models: ChatMessage / SamplingOptions / SessionFlags 与角色编码。
- history: 内存消息日志 MessageLog。
- conversation: 持久化会话与消息记录及 ChatStore 抽象。
- exceptions: 业务异常类型定义。
"""
