from ..llm.base import LLMClient


class Agent:
    def __init__(self, name: str, role: str, goal: str, llm_client: LLMClient):
        self.name = name
        self.role = role
        self.goal = goal
        self.llm_client = llm_client

    def _build_prompt(self, task: str, context: str = "") -> str:
        prompt = f"You are {self.name}, a {self.role}.\nYour goal: {self.goal}\n\n"
        if context:
            prompt += f"Context:\n{context}\n\n"
        prompt += f"Task:\n{task}"
        return prompt
